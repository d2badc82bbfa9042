"""
Store interfaces consumed by the ranking engine, plus the SQLAlchemy backing.
"""

from feedengine.repositories.base import (
    ArticleQuery,
    ArticleRepository,
    EngagementRepository,
    UserRepository,
)
from feedengine.repositories.sql import (
    SqlArticleRepository,
    SqlEngagementRepository,
    SqlUserRepository,
)

__all__ = [
    "ArticleQuery",
    "ArticleRepository",
    "EngagementRepository",
    "UserRepository",
    "SqlArticleRepository",
    "SqlEngagementRepository",
    "SqlUserRepository",
]
