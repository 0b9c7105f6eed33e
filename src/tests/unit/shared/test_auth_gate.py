"""Unit tests for the request authorization gates."""

import pytest
import pytest_asyncio
from fakes import DOCTOR_USER_ID
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from shared.auth import Identity, extract_bearer, require_auth, require_permission, require_role
from shared.errors import InvalidCredentialError, MissingCredentialError
from shared.responses import install_exception_handlers


class TestExtractBearer:
    """Test Authorization header parsing."""

    def test_bearer_token(self) -> None:
        assert extract_bearer("Bearer abc.def.ghi") == "abc.def.ghi"
        assert extract_bearer("bearer   abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing(self, header) -> None:
        with pytest.raises(MissingCredentialError):
            extract_bearer(header)

    @pytest.mark.parametrize("header", ["Basic dXNlcjpwYXNz", "Bearer", "Bearer   ", "abc"])
    def test_unsupported(self, header: str) -> None:
        with pytest.raises(InvalidCredentialError):
            extract_bearer(header)


@pytest.fixture
def gated_app(auth_gate) -> FastAPI:
    app = FastAPI()
    app.state.auth_gate = auth_gate
    install_exception_handlers(app)

    @app.get("/me")
    async def me(identity: Identity = Depends(require_auth())):
        return {"user_id": identity.user_id}

    @app.get("/clinical")
    async def clinical(
        identity: Identity = Depends(require_permission("patients.clinical_read", "assigned")),
    ):
        return {"user_id": identity.user_id}

    @app.get("/billing", dependencies=[Depends(require_permission("billing.read"))])
    async def billing():
        return {"ok": True}

    @app.get("/admin", dependencies=[Depends(require_role("admin", "super_admin"))])
    async def admin():
        return {"ok": True}

    return app


@pytest_asyncio.fixture
async def client(gated_app: FastAPI):
    async with AsyncClient(transport=ASGITransport(app=gated_app), base_url="http://test") as ac:
        yield ac


class TestAuthGate:
    """Test 401/403 outcomes of the gates."""

    async def test_missing_header(self, client: AsyncClient, doctor_scenario) -> None:
        response = await client.get("/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json() == {
            "status": "error",
            "error": "UNAUTHORIZED",
            "message": "Authorization header missing",
        }

    async def test_invalid_token(self, client, doctor_scenario) -> None:
        response = await client.get("/me", headers={"Authorization": "Bearer junk"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    async def test_authenticated(self, client, doctor_scenario, bearer) -> None:
        response = await client.get("/me", headers=bearer(DOCTOR_USER_ID))

        assert response.status_code == 200
        assert response.json() == {"user_id": DOCTOR_USER_ID}

    async def test_permission_granted(self, client, doctor_scenario, bearer) -> None:
        response = await client.get("/clinical", headers=bearer(DOCTOR_USER_ID))
        assert response.status_code == 200

    async def test_permission_denied(self, client, doctor_scenario, bearer) -> None:
        """Test the 403 body never names the missing permission."""
        response = await client.get("/billing", headers=bearer(DOCTOR_USER_ID))

        assert response.status_code == 403
        assert response.json() == {
            "status": "error",
            "error": "FORBIDDEN",
            "message": "Insufficient permissions",
        }
        assert "billing" not in response.text

    async def test_role_denied(self, client, doctor_scenario, bearer) -> None:
        response = await client.get("/admin", headers=bearer(DOCTOR_USER_ID))
        assert response.status_code == 403

    async def test_role_granted(self, client, store, bearer) -> None:
        store.add_user(1)
        store.add_role(2, "admin", is_system=True)
        store.assign(1, 2)

        response = await client.get("/admin", headers=bearer(1))

        assert response.status_code == 200

    async def test_deactivated_user_rejected(self, client, doctor_scenario, bearer) -> None:
        headers = bearer(DOCTOR_USER_ID)
        user = doctor_scenario.users[DOCTOR_USER_ID]
        doctor_scenario.users[DOCTOR_USER_ID] = user.model_copy(update={"is_active": False})

        response = await client.get("/me", headers=headers)

        assert response.status_code == 401
