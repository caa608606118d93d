from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bioauth.integrations.fastapi_integration import get_auth_service
from bioauth.manager.asynchronous import BioAuthAsync

router = APIRouter(prefix="/admin", tags=["Administration"])


class UserSummary(BaseModel):
    name: str
    email: str
    registeredAt: str


class UserListResponse(BaseModel):
    total: int = Field(..., description="Number of registered credentials.")
    users: List[UserSummary]


@router.get("/users", response_model=UserListResponse, summary="List registered users")
async def list_users(service: BioAuthAsync = Depends(get_auth_service)):
    """
    Read-only listing of every registered credential.
    Public keys and signature counters are never part of the response.
    """
    users = await service.list_users()
    return {"total": len(users), "users": users}


admin_router = router
