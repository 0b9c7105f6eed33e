"""Base model configuration for all Pydantic models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


class HealthcareBaseModel(BaseModel):
    """Base model with common configuration.

    Conventions:
    - All timestamps are timezone-aware UTC
    - Identifiers are integers assigned by the store
    - Field names are lowercase snake_case
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a timestamp to aware UTC.

    Some drivers (SQLite) hand back naive datetimes for timezone-aware
    columns; those are stored as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current aware UTC time."""
    return datetime.now(timezone.utc)
