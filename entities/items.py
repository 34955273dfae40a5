"""
Items

The catalogue, keyed by barcode. Deleting an item marks it DELETED so its
history keeps resolving. Circulation (checkout, checkin, renew) is exposed as
custom operations on the item.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from config import ServerConfig
from database import DatabaseConnection
from errors import Conflict, EntityNotFound, ValidationError, field_error
from models import (
    BorrowerState, Checkout, Item, ItemState,
    ITEM_AGES, ITEM_CATEGORIES, ITEM_SUBJECTS,
)
from query import (
    Column, EntityTable, EnumColumnDomain,
    BOOLEAN, INTEGER, CONTAINS,
)
from .base import BaseEntity, SoftDelete
from .borrowers import Borrowers
from .checkouts import Checkouts, History

logger = logging.getLogger(__name__)


items_table = EntityTable(
    "items",
    natural_key="barcode",
    columns=[
        Column("id", domain=INTEGER, internal=True, generated=True),
        Column("barcode", label="Barcode", required=True),
        Column("title", label="Title", query_op=CONTAINS),
        Column("author", label="Author", query_op=CONTAINS),
        Column("seriestitle", label="Series", query_op=CONTAINS),
        Column("isbn", label="ISBN"),
        Column("publisher", label="Publisher"),
        Column("year", label="Year", domain=INTEGER),
        Column("category", label="Category", domain=EnumColumnDomain(ITEM_CATEGORIES)),
        Column("subject", label="Subject", domain=EnumColumnDomain(ITEM_SUBJECTS)),
        Column("age", label="Age", domain=EnumColumnDomain(ITEM_AGES)),
        Column(
            "state", label="State",
            domain=EnumColumnDomain([s.value for s in ItemState]), required=True, generated=True,
        ),
        Column("antolin_sticker", label="Antolin", domain=BOOLEAN, generated=True),
        Column("description", label="Description"),
    ],
)


class Items(BaseEntity[Item]):
    """Item entity with circulation operations."""

    table = items_table
    model = Item
    flags = ("checkout", "history")
    extra_methods = {"checkout": "checkout", "checkin": "checkin", "renew": "renew"}
    soft_delete = SoftDelete("state", ItemState.DELETED.value)

    def __init__(
        self,
        db: DatabaseConnection,
        checkouts: Checkouts,
        history: History,
        borrowers: Borrowers,
        config: Optional[ServerConfig] = None,
    ):
        super().__init__(db, config)
        self.checkouts = checkouts
        self.history = history
        self.borrowers = borrowers

    def due_date(self) -> date:
        return date.today() + timedelta(days=self.config.loan_days)

    async def load_checkout(self, item: Item) -> Optional[Checkout]:
        return await self.checkouts.find_current(item.barcode)

    async def load_history(self, item: Item) -> list[Checkout]:
        result = await self.history.list_for_item(item.barcode)
        return result.rows

    async def checkout(self, key: Any, body: Any = None) -> Item:
        """
        Lend an item to a borrower.

        Body: {"borrowernumber": ...}

        Raises:
            ValidationError: borrowernumber missing or not an integer
            EntityNotFound: no such item or borrower
            Conflict: item not circulating, already checked out, or borrower inactive
        """
        item = await self.get(key)
        raw = body.get("borrowernumber") if isinstance(body, dict) else None
        result = INTEGER.check(raw)
        if raw in (None, "") or not result.ok:
            raise ValidationError([
                field_error("borrowernumber", "REQUIRED", "A valid borrowernumber is required")
            ])
        borrowernumber = result.value

        if item.state != ItemState.CIRCULATING.value:
            raise Conflict(f"Item {item.barcode} is {item.state}", code="ITEM_NOT_CIRCULATING")
        if await self.checkouts.find({"barcode": item.barcode}) is not None:
            raise Conflict(f"Item {item.barcode} is already checked out", code="ITEM_CHECKED_OUT")

        borrower = await self.borrowers.find({"borrowernumber": borrowernumber})
        if borrower is None:
            raise EntityNotFound(
                f"borrowers {borrowernumber} not found", entity="borrowers", key=str(borrowernumber)
            )
        if borrower.state != BorrowerState.ACTIVE.value:
            raise Conflict(f"Borrower {borrowernumber} is {borrower.state}", code="BORROWER_INACTIVE")

        item.checkout = await self.checkouts.open(item.barcode, borrowernumber, self.due_date())
        return item

    async def checkin(self, key: Any, body: Any = None) -> Item:
        """Return an item; its checkout moves to history."""
        item = await self.get(key)
        returned = await self.history.check_in(item.barcode)
        if returned is None:
            raise Conflict(f"Item {item.barcode} is not checked out", code="ITEM_NOT_CHECKED_OUT")
        item.checkout = None
        return item

    async def renew(self, key: Any, body: Any = None) -> Item:
        """Extend the checkout of an item by one loan period."""
        item = await self.get(key)
        renewed = await self.checkouts.renew(item.barcode, self.due_date())
        if renewed is None:
            raise Conflict(f"Item {item.barcode} is not checked out", code="ITEM_NOT_CHECKED_OUT")
        logger.info(f"Renewed {item.barcode} until {renewed.date_due}")
        item.checkout = renewed
        return item
