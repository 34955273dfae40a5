"""
Borrowers

Families registered with the library, keyed by borrowernumber. Deleting a
borrower deactivates it; checkouts and history keep referring to it.

Flags:
- items: current checkouts with item titles
- history: returned items
- fees: outstanding fines of current checkouts and history, with their total
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from config import ServerConfig
from database import DatabaseConnection
from errors import Unauthorized
from models import Borrower, BorrowerState, Checkout, FeeInfo
from query import Column, EntityTable, EnumColumnDomain, INTEGER, CONTAINS
from transport.registrar import Handler
from auth import READ, Action
from .base import BaseEntity, SoftDelete, gather_all
from .checkouts import Checkouts, History

logger = logging.getLogger(__name__)


borrowers_table = EntityTable(
    "borrowers",
    natural_key="borrowernumber",
    columns=[
        Column("id", domain=INTEGER, internal=True, generated=True),
        Column("borrowernumber", label="Borrower Number", domain=INTEGER, internal=True, generated=True),
        Column("surname", label="Surname", query_op=CONTAINS),
        Column("firstname", label="First Names", query_op=CONTAINS),
        Column("contactname", label="Contact", query_op=CONTAINS),
        Column("phone", label="Phone"),
        Column("emailaddress", label="Email", query_op=CONTAINS, required=True),
        Column("sycamoreid", label="Sycamore ID"),
        Column(
            "state", label="State",
            domain=EnumColumnDomain([s.value for s in BorrowerState]), required=True, generated=True,
        ),
    ],
)

# Settles every outstanding fine of a borrower in one statement
PAY_FEES_SQL = """
    WITH paid_checkouts AS (
        UPDATE checkouts SET fine_paid = fine_due
        WHERE borrowernumber = $1 AND fine_due > fine_paid
        RETURNING id
    ), paid_history AS (
        UPDATE history SET fine_paid = fine_due
        WHERE borrowernumber = $1 AND fine_due > fine_paid
        RETURNING id
    )
    SELECT (SELECT COUNT(*) FROM paid_checkouts) + (SELECT COUNT(*) FROM paid_history) AS paid
"""


def total_fees(*groups: list[Checkout]) -> float:
    """Sum of what is still owed (fine_due - fine_paid, never negative) across rows."""
    return round(sum(row.outstanding_fine for rows in groups for row in rows), 2)


class Borrowers(BaseEntity[Borrower]):
    """Borrower entity."""

    table = borrowers_table
    model = Borrower
    flags = ("items", "history", "fees")
    extra_methods = {"payFees": "pay_fees", "renewAllItems": "renew_all_items"}
    soft_delete = SoftDelete("state", BorrowerState.INACTIVE.value)

    def __init__(
        self,
        db: DatabaseConnection,
        checkouts: Checkouts,
        history: History,
        config: Optional[ServerConfig] = None,
    ):
        super().__init__(db, config)
        self.checkouts = checkouts
        self.history = history

    async def load_items(self, borrower: Borrower) -> list[Checkout]:
        result = await self.checkouts.list_for_borrower(borrower.borrowernumber)
        return result.rows

    async def load_history(self, borrower: Borrower) -> list[Checkout]:
        result = await self.history.list_for_borrower(borrower.borrowernumber)
        return result.rows

    async def load_fees(self, borrower: Borrower) -> FeeInfo:
        items, history = await gather_all(
            self.checkouts.list_for_borrower(borrower.borrowernumber, fees_only=True),
            self.history.list_for_borrower(borrower.borrowernumber, fees_only=True),
        )
        return FeeInfo(
            total=total_fees(items.rows, history.rows),
            items=items.rows,
            history=history.rows,
        )

    async def pay_fees(self, key: Any, body: Any = None) -> Borrower:
        """Mark every outstanding fine of the borrower as paid; returns the borrower with fees."""
        borrowernumber = self.to_key_fields(key)["borrowernumber"]
        if await self.find({"borrowernumber": borrowernumber}) is None:
            raise self.not_found(key)
        paid = await self.db.fetchval(" ".join(PAY_FEES_SQL.split()), borrowernumber)
        logger.info(f"Borrower {borrowernumber} paid {paid} fines")
        return await self.get(borrowernumber, {"fees": True})

    async def renew_all_items(self, key: Any, body: Any = None) -> Borrower:
        """Extend every current checkout of the borrower by one loan period."""
        borrowernumber = self.to_key_fields(key)["borrowernumber"]
        if await self.find({"borrowernumber": borrowernumber}) is None:
            raise self.not_found(key)
        date_due = date.today() + timedelta(days=self.config.loan_days)
        await self.checkouts.renew_for_borrower(borrowernumber, date_due)
        return await self.get(borrowernumber, {"items": True})

    def init_routes(self, registrar) -> None:
        async def get_history(call):
            borrowernumber = self.to_key_fields(call.param("key"))["borrowernumber"]
            return await self.history.list_for_borrower(
                borrowernumber, options=call.options(default_order="-returndate")
            )

        async def get_me(call):
            if call.user is None or call.user.id is None:
                raise Unauthorized("No user", code="NO_USER")
            return await self.get(call.user.id, {"items": True, "fees": True})

        registrar.add_handler(
            Handler("GET", f"/{self.name}/{{key}}/history", get_history, Action(self.name, READ))
        )
        registrar.add_handler(Handler("GET", "/me", get_me, Action("profile", "read")))
