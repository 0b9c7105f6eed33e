"""Unit tests for bearer credential verification."""

from datetime import timedelta

import pytest
from jose import jwt

from shared.auth import Identity, TokenVerifier
from shared.config import JWTSettings
from shared.errors import InvalidCredentialError, UnknownSubjectError


@pytest.fixture
def user(store):
    return store.add_user(7, email="dr.house@clinic.test")


class TestIssue:
    """Test credential minting."""

    def test_claims(self, verifier: TokenVerifier, user) -> None:
        token = verifier.issue(Identity(user_id=7, email=user.email))
        payload = verifier.decode(token)

        assert payload.sub == "7"
        assert payload.email == "dr.house@clinic.test"
        assert payload.iss == "healthcare-app"
        assert payload.exp - payload.iat == 24 * 60 * 60

    def test_no_role_claims(self, verifier, user) -> None:
        """Test credentials carry identity only."""
        token = verifier.issue(Identity(user_id=7, email=user.email))
        claims = jwt.get_unverified_claims(token)
        assert set(claims) == {"sub", "email", "iat", "exp", "iss"}


class TestVerify:
    """Test credential verification."""

    async def test_valid_credential(self, verifier, user) -> None:
        identity = await verifier.verify(verifier.issue(Identity(user_id=7, email=user.email)))
        assert identity.user_id == 7
        assert identity.email == user.email
        assert identity.name == "User 7"

    async def test_email_match_is_case_insensitive(self, verifier, user) -> None:
        token = verifier.issue(Identity(user_id=7, email="Dr.House@Clinic.test"))
        assert (await verifier.verify(token)).user_id == 7

    async def test_expired_credential(self, verifier, user) -> None:
        token = verifier.issue(
            Identity(user_id=7, email=user.email), expires_in=timedelta(seconds=-1)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(token)

    async def test_wrong_signature(self, uow_factory, verifier, user) -> None:
        forged = TokenVerifier(uow_factory, JWTSettings(secret_key="someone-else"))
        token = forged.issue(Identity(user_id=7, email=user.email))
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(token)

    async def test_wrong_issuer(self, uow_factory, verifier, user) -> None:
        foreign = TokenVerifier(
            uow_factory, JWTSettings(secret_key="test-signing-secret", issuer="other-app")
        )
        token = foreign.issue(Identity(user_id=7, email=user.email))
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    async def test_malformed(self, verifier, token: str) -> None:
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(token)

    async def test_non_numeric_subject(self, verifier, jwt_settings) -> None:
        claims = {
            "sub": "dr-house",
            "email": "x@clinic.test",
            "iat": 0,
            "exp": 4102444800,
            "iss": jwt_settings.issuer,
        }
        token = jwt.encode(
            claims,
            jwt_settings.secret_key,
            algorithm=jwt_settings.algorithm,
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(token)

    async def test_unknown_user(self, verifier) -> None:
        token = verifier.issue(Identity(user_id=404, email="ghost@clinic.test"))
        with pytest.raises(UnknownSubjectError):
            await verifier.verify(token)

    async def test_inactive_user(self, store, verifier) -> None:
        store.add_user(8, email="gone@clinic.test", is_active=False)
        token = verifier.issue(Identity(user_id=8, email="gone@clinic.test"))
        with pytest.raises(UnknownSubjectError):
            await verifier.verify(token)

    async def test_email_mismatch(self, verifier, user) -> None:
        """Test a credential for a reassigned id is rejected."""
        token = verifier.issue(Identity(user_id=7, email="previous.owner@clinic.test"))
        with pytest.raises(UnknownSubjectError):
            await verifier.verify(token)
