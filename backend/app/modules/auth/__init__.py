# Authentication module

from app.modules.auth.dependencies import (
    get_current_user,
    require_roles,
    require_admin,
    require_librarian,
    require_reader,
    is_staff,
)

__all__ = [
    "get_current_user",
    "require_roles",
    "require_admin",
    "require_librarian",
    "require_reader",
    "is_staff",
]
