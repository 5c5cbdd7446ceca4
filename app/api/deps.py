from app.db import get_db
from app.services.auth_dependencies import require_admin, require_user_auth

__all__ = [
    "get_db",
    "require_admin",
    "require_user_auth",
]
