from .user_identity_row import UserIdentityRow
from .user_row import UserRow

__all__ = ["UserIdentityRow", "UserRow"]
