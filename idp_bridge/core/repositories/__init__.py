from .user_repo import UserIdentityRepository, UserRepository

__all__ = ["UserIdentityRepository", "UserRepository"]
