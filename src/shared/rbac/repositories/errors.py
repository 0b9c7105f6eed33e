"""Translation of database constraint violations into the error taxonomy."""

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import ConflictError, IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(error: sa_exc.IntegrityError) -> bool:
    """True when the driver reports a unique/partial-unique index violation."""
    orig = error.orig
    for attr in ("sqlstate", "pgcode"):
        if getattr(orig, attr, None) == UNIQUE_VIOLATION_SQLSTATE:
            return True
    text = str(orig).lower()
    return "unique constraint" in text or "duplicate key" in text


async def flush_or_raise(session: AsyncSession, conflict_message: str, **context) -> None:
    """Flush pending writes, mapping constraint failures to taxonomy errors.

    The session is unusable afterwards; the unit of work rolls it back.
    """
    try:
        await session.flush()
    except sa_exc.IntegrityError as e:
        if is_unique_violation(e):
            raise ConflictError(conflict_message, **context) from e
        raise IntegrityError(**context) from e
