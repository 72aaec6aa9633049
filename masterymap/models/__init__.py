# Database models (User, AuthToken)
# Import all models here so Base.metadata.create_all() can find them
from masterymap.models.user import Role, User
from masterymap.models.token import AuthToken, TokenType

__all__ = ["AuthToken", "Role", "TokenType", "User"]
