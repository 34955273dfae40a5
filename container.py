"""
Entity Container - Centralized dependency injection container

Single source of truth for entity initialization: the server, the schema
tooling and the tests all build their entities here.
"""

from typing import Optional

from config import ServerConfig
from entities import Borrowers, Checkouts, History, Items


class EntityContainer:
    """
    Container for entity instances with attribute access.

    Borrowers and items read their sub-resources through the checkouts and
    history entities, so those are built first.
    """
    def __init__(self, db, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.checkouts = Checkouts(db, self.config)
        self.history = History(db, self.config)
        self.borrowers = Borrowers(db, self.checkouts, self.history, self.config)
        self.items = Items(db, self.checkouts, self.history, self.borrowers, self.config)

    def all(self) -> list:
        """Entities in route registration order."""
        return [self.borrowers, self.items, self.checkouts, self.history]
