"""Bearer credential verification.

Credentials are HS256 JWTs carrying identity claims only. Roles and
permissions are never read from a credential: they can change between
issuance and use, so every decision consults the RBAC engine.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from shared.config import JWTSettings
from shared.errors import InvalidCredentialError, UnknownSubjectError
from shared.models import HealthcareBaseModel, utc_now
from shared.observability import get_logger
from shared.rbac.repositories import UnitOfWork

logger = get_logger(__name__)


class Identity(HealthcareBaseModel):
    """Stable identity of an authenticated caller."""

    user_id: int
    email: str
    name: str | None = None


class TokenPayload(HealthcareBaseModel):
    """Validated JWT claims."""

    sub: str
    email: str
    iat: int
    exp: int
    iss: str


class TokenVerifier:
    """Decode credentials and resolve them to live users.

    Args:
        uow_factory: Unit of work factory for the user lookup
        settings: Signing secret, algorithm, issuer and lifetime
        clock: Source of "now" for issued credentials
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        settings: JWTSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self.settings = settings
        self._clock = clock

    def issue(self, identity: Identity, expires_in: timedelta | None = None) -> str:
        """Mint a credential for ``identity``.

        Used by the login flow of the user service and by tests.
        """
        now = self._clock()
        lifetime = expires_in or timedelta(minutes=self.settings.access_token_expire_minutes)
        claims: dict[str, Any] = {
            "sub": str(identity.user_id),
            "email": identity.email,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
            "iss": self.settings.issuer,
        }
        return jwt.encode(claims, self.settings.secret_key, algorithm=self.settings.algorithm)

    def decode(self, token: str) -> TokenPayload:
        """Validate signature, expiry and issuer.

        Raises:
            InvalidCredentialError: Malformed, expired or foreign credential
        """
        try:
            claims = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                issuer=self.settings.issuer,
                options={"verify_aud": False, "require_exp": True, "require_sub": True},
            )
            payload = TokenPayload.model_validate(claims)
            int(payload.sub)
        except (JWTError, ValueError) as e:
            # ValidationError is a ValueError subclass
            logger.info("Credential rejected", reason=type(e).__name__)
            raise InvalidCredentialError() from e
        return payload

    async def verify(self, token: str) -> Identity:
        """Resolve a credential to the live user it names.

        Raises:
            InvalidCredentialError: The credential does not decode
            UnknownSubjectError: No active user matches its claims
        """
        payload = self.decode(token)
        user_id = int(payload.sub)

        async with self._uow_factory() as uow:
            user = await uow.users.get_active(user_id)

        if user is None or user.email.lower() != payload.email.lower():
            raise UnknownSubjectError(subject=user_id)

        return Identity(user_id=user.id, email=user.email, name=user.name)
