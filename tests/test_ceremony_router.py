import pytest
from fastapi import status
from httpx import AsyncClient
from unittest.mock import AsyncMock, patch

from bioauth.core.encoding import encoding_utils


async def _register(client: AsyncClient, authenticator, email="a@x.com", name="Alice"):
    response = await client.post("/register/request", json={"email": email, "name": name})
    assert response.status_code == status.HTTP_200_OK
    options = response.json()
    response = await client.post("/register/response", json=authenticator.registration_body(options))
    assert response.status_code == status.HTTP_200_OK, response.text
    return options


@pytest.mark.asyncio
async def test_register_and_login_flow(fastapi_client: AsyncClient, authenticator):
    options = await _register(fastapi_client, authenticator, email="Alice@X.com")
    assert set(options) == {"sessionId", "challenge", "rp", "user", "pubKeyCredParams",
                            "authenticatorSelection", "timeout"}

    response = await fastapi_client.post("/login/request", json={"email": "alice@x.com"})
    assert response.status_code == status.HTTP_200_OK
    login_options = response.json()
    assert login_options["allowCredentials"][0]["id"] == authenticator.credential_id
    assert login_options["userVerification"] == "preferred"

    response = await fastapi_client.post("/login/response", json=authenticator.login_body(login_options))
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "user": {"name": "Alice", "email": "alice@x.com"}}


@pytest.mark.asyncio
async def test_register_request_missing_info(fastapi_client: AsyncClient):
    response = await fastapi_client.post("/register/request", json={"email": "a@x.com"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing info"}


@pytest.mark.asyncio
async def test_register_origin_mismatch_then_session_gone(fastapi_client: AsyncClient, authenticator):
    """A rejected response burns the session; resubmitting fails for a different reason."""
    response = await fastapi_client.post("/register/request", json={"email": "a@x.com", "name": "Alice"})
    options = response.json()

    response = await fastapi_client.post(
        "/register/response", json=authenticator.registration_body(options, origin="https://evil.example"))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Origin" in response.json()["error"]

    response = await fastapi_client.post("/register/response", json=authenticator.registration_body(options))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Session expired"}


@pytest.mark.asyncio
async def test_register_response_twice(fastapi_client: AsyncClient, authenticator):
    response = await fastapi_client.post("/register/request", json={"email": "a@x.com", "name": "Alice"})
    body = authenticator.registration_body(response.json())

    first = await fastapi_client.post("/register/response", json=body)
    second = await fastapi_client.post("/register/response", json=body)
    assert first.status_code == status.HTTP_200_OK
    assert first.json() == {"success": True}
    assert second.status_code == status.HTTP_400_BAD_REQUEST
    assert second.json()["error"] == "Session expired"


@pytest.mark.asyncio
async def test_register_response_bad_encoding_discards_session(fastapi_client: AsyncClient, authenticator):
    response = await fastapi_client.post("/register/request", json={"email": "a@x.com", "name": "Alice"})
    options = response.json()
    body = authenticator.registration_body(options)
    body["credential"]["response"]["attestationObject"] = "a"

    response = await fastapi_client.post("/register/response", json=body)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "attestationObject" in response.json()["error"]

    response = await fastapi_client.post("/register/response", json=authenticator.registration_body(options))
    assert response.json() == {"error": "Session expired"}


@pytest.mark.asyncio
async def test_register_response_missing_fields(fastapi_client: AsyncClient):
    response = await fastapi_client.post("/register/response", json={"sessionId": "x"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing clientDataJSON"}


@pytest.mark.asyncio
async def test_login_request_unknown_email(fastapi_client: AsyncClient):
    response = await fastapi_client.post("/login/request", json={"email": "nobody@x.com"})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "No account found"}


@pytest.mark.asyncio
async def test_login_response_errors(fastapi_client: AsyncClient, authenticator, authenticator_factory):
    await _register(fastapi_client, authenticator)

    response = await fastapi_client.post("/login/request", json={"email": "a@x.com"})
    body = authenticator.login_body(response.json())
    body["assertion"]["response"]["signature"] = encoding_utils.base64url_encode(b"\x30\x06\x02\x01\x01\x02\x01\x01")
    response = await fastapi_client.post("/login/response", json=body)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid signature"}

    response = await fastapi_client.post("/login/request", json={"email": "a@x.com"})
    stranger = authenticator_factory()
    response = await fastapi_client.post("/login/response", json=stranger.login_body(response.json()))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Credential not found"}

    response = await fastapi_client.post("/login/response", json={"sessionId": "gone", "assertion": {
        "id": authenticator.credential_id,
        "response": {"clientDataJSON": "e30", "authenticatorData": "AA", "signature": "AA"},
    }})
    assert response.json() == {"error": "Session expired"}


@pytest.mark.asyncio
async def test_login_replay_over_http(fastapi_client: AsyncClient, authenticator):
    await _register(fastapi_client, authenticator)

    for expected in (status.HTTP_200_OK, status.HTTP_400_BAD_REQUEST):
        response = await fastapi_client.post("/login/request", json={"email": "a@x.com"})
        response = await fastapi_client.post("/login/response",
                                             json=authenticator.login_body(response.json(), sign_count=9))
        assert response.status_code == expected
    assert response.json() == {"error": "Replay attack"}


@pytest.mark.asyncio
async def test_unexpected_error_is_500(fastapi_client: AsyncClient, service):
    with patch.object(service.registration, "request", AsyncMock(side_effect=RuntimeError("boom"))):
        response = await fastapi_client.post("/register/request", json={"email": "a@x.com", "name": "A"})
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "An unexpected error occurred."}


@pytest.mark.asyncio
async def test_health(fastapi_client: AsyncClient):
    response = await fastapi_client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
@pytest.mark.parametrize("path,body,message", [
    ("/register/request", {"email": 123, "name": "A"}, "Invalid email"),
    ("/login/request", {"email": ["a@x.com"]}, "Invalid email"),
    ("/login/response", {"sessionId": "s", "assertion": None}, "Invalid assertion"),
    ("/register/response", {"sessionId": "s", "credential": {"id": "x", "response": "nope"}},
     "Invalid credential.response"),
])
async def test_wrong_field_types_are_400(fastapi_client: AsyncClient, path, body, message):
    response = await fastapi_client.post(path, json=body)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": message}


@pytest.mark.asyncio
async def test_body_not_json_is_400(fastapi_client: AsyncClient):
    response = await fastapi_client.post("/login/request", content=b"{not json",
                                         headers={"Content-Type": "application/json"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid JSON body"}


@pytest.mark.asyncio
async def test_missing_body_is_400(fastapi_client: AsyncClient):
    response = await fastapi_client.post("/register/request")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing request body"}


@pytest.mark.asyncio
async def test_other_routes_keep_default_validation(app, fastapi_client: AsyncClient):
    @app.get("/items/{item_id}")
    async def read_item(item_id: int):
        return {"item_id": item_id}

    response = await fastapi_client.get("/items/abc")
    assert response.status_code == 422
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_login_response_garbage_signature_encoding(fastapi_client: AsyncClient, authenticator):
    await _register(fastapi_client, authenticator)
    response = await fastapi_client.post("/login/request", json={"email": "a@x.com"})
    body = authenticator.login_body(response.json())
    body["assertion"]["response"]["signature"] = "MEUC*not*base64url"

    response = await fastapi_client.post("/login/response", json=body)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid encoding for signature"}
