"""
Library entities

Each entity binds a table schema to the generic CRUD contract in base.py and
adds its own flags, custom operations and routes.
"""

from .base import BaseEntity, SoftDelete, gather_all
from .checkouts import Checkouts, History, checkouts_table, history_table
from .borrowers import Borrowers, borrowers_table
from .items import Items, items_table

__all__ = [
    'BaseEntity', 'SoftDelete', 'gather_all',
    'Checkouts', 'History', 'Borrowers', 'Items',
    'checkouts_table', 'history_table', 'borrowers_table', 'items_table',
]
