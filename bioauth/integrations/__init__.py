from .fastapi_integration import auth_service, get_auth_service
