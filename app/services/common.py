import uuid
from datetime import datetime, timezone

from app.errors import ValidationFailed


def coerce_uuid(value):
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationFailed(f"Invalid identifier: {value}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_ordering(query, order_by, order_dir, allowed_columns):
    if order_by not in allowed_columns:
        raise ValidationFailed(
            f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
            allowed=sorted(allowed_columns),
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit, offset):
    return query.limit(limit).offset(offset)


def require_text(value: str | None, field: str) -> str:
    """Return ``value`` stripped, or raise when it is missing or blank."""
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationFailed(f"{field} must not be blank", field=field)
    return cleaned
