"""Storage backends."""

from .abstract_repository import AbstractRepository, NewOrderItem
from .sql_repository import SQLAlchemyRepository

__all__ = ["AbstractRepository", "NewOrderItem", "SQLAlchemyRepository"]
