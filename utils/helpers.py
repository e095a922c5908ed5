import uuid
from datetime import datetime, timezone


def now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    """Generate a random record ID with the given prefix, e.g. ORD-1a2b3c4d5e6f."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def public_user(user: dict | None) -> dict | None:
    """Display fields of a user that are safe to send to other users."""
    if not user:
        return None
    return {
        "id": user["id"],
        "username": user.get("username"),
        "profile_picture_url": user.get("profile_picture_url"),
    }


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
