"""Identifier helpers."""

from uuid import UUID


def to_uuid(value: str | UUID, field: str = "id") -> UUID:
    """Parse a UUID, raising ValueError that names the offending field."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError) as e:
        raise ValueError(f"{field} must be a UUID, got {value!r}") from e


def to_uuid_list(values, field: str = "ids") -> list[UUID]:
    return [to_uuid(v, field) for v in values]
