"""
Checkouts and History

A checkout links an item (by barcode) to a borrower while the item is out;
at most one checkout exists per barcode. Checking an item in moves its
checkout row into history in a single statement.

The sub-loaders used by the borrowers and items entities live here: they join
the checkout tables with items (for titles) or borrowers (for names) and reuse
the builder's WHERE / ORDER BY / paging clauses with a table alias.
"""

import logging
from datetime import date
from typing import Any, Optional

from auth import UPDATE, Action
from models import Checkout
from query import (
    Column, EntityTable, QueryOptions, QueryResult,
    INTEGER, NUMBER, DATE,
)
from .base import BaseEntity, gather_all

logger = logging.getLogger(__name__)


def _checkout_columns():
    return [
        Column("id", domain=INTEGER, internal=True, generated=True),
        Column("barcode", label="Barcode", required=True),
        Column("borrowernumber", label="Borrower", domain=INTEGER, required=True),
        Column("checkout_date", label="Checked out", domain=DATE, generated=True),
        Column("date_due", label="Due", domain=DATE, required=True),
        Column("fine_due", label="Fine", domain=NUMBER, generated=True),
        Column("fine_paid", label="Paid", domain=NUMBER, generated=True),
    ]


checkouts_table = EntityTable(
    "checkouts",
    natural_key="barcode",
    columns=_checkout_columns(),
)

history_table = EntityTable(
    "history",
    natural_key="id",
    columns=_checkout_columns() + [
        Column("returndate", label="Returned", domain=DATE, generated=True),
    ],
)

ITEM_JOIN_COLUMNS = ("title", "author", "category")
BORROWER_JOIN_COLUMNS = ("surname", "firstname")


class CheckoutEntity(BaseEntity[Checkout]):
    """Operations shared by current checkouts and history."""

    model = Checkout
    extra_methods = {"payFee": "pay_fee"}
    method_actions = {"payFee": Action("fees", UPDATE)}

    async def _list_joined(
        self,
        criteria: dict,
        join_table: str,
        join_key: str,
        join_columns: tuple,
        fees_only: bool = False,
        options: Optional[QueryOptions] = None,
    ) -> QueryResult[Checkout]:
        options = options or self.default_options(limit=self.config.max_limit)
        params: list = []
        where_clause = self.builder.build_conditions(self.table, criteria, "and", params, alias="c")
        if fees_only:
            fee_filter = "c.fine_due > c.fine_paid"
            where_clause = f"{where_clause} AND {fee_filter}" if where_clause else f"WHERE {fee_filter}"
        base = (
            f"FROM {self.table.name} c LEFT JOIN {join_table} j ON j.{join_key} = c.{join_key} "
            f"{where_clause}"
        )
        count_params = list(params)
        order_clause = self.builder.build_order(self.table, options, alias="c", joined=join_columns)
        paging_clause = self.builder.build_paging(options, params)
        select_list = ", ".join(
            [self.builder.select_list(self.table, alias="c")] + [f"j.{c}" for c in join_columns]
        )
        sql = " ".join(f"SELECT {select_list} {base} {order_clause} {paging_clause}".split())

        if options.return_count:
            rows, count = await gather_all(
                self.db.fetch(sql, *params),
                self.db.fetchval(f"SELECT COUNT(*) AS count {base}", *count_params),
            )
        else:
            rows = await self.db.fetch(sql, *params)
            count = None
        return QueryResult(rows=[self.to_record(r) for r in rows], count=count)

    async def list_for_borrower(
        self,
        borrowernumber: int,
        fees_only: bool = False,
        options: Optional[QueryOptions] = None,
    ) -> QueryResult[Checkout]:
        """A borrower's rows with item title, author and category."""
        return await self._list_joined(
            {"borrowernumber": borrowernumber}, "items", "barcode", ITEM_JOIN_COLUMNS,
            fees_only=fees_only, options=options,
        )

    async def list_for_item(
        self,
        barcode: str,
        options: Optional[QueryOptions] = None,
    ) -> QueryResult[Checkout]:
        """An item's rows with the borrower's names."""
        return await self._list_joined(
            {"barcode": barcode}, "borrowers", "borrowernumber", BORROWER_JOIN_COLUMNS,
            options=options,
        )

    async def pay_fee(self, key: Any, body: Any = None) -> Checkout:
        """Mark the fine of one row as fully paid."""
        key_name = self.table.natural_key
        key_value = self.to_key_fields(key)[key_name]
        sql = (
            f"UPDATE {self.table.name} SET fine_paid = fine_due WHERE {key_name} = $1 "
            f"RETURNING {self.builder.select_list(self.table)}"
        )
        row = await self.db.fetchrow(sql, key_value)
        if row is None:
            raise self.not_found(key)
        logger.info(f"Fee paid on {self.name} {key}")
        return self.to_record(row)


class Checkouts(CheckoutEntity):
    """Items currently checked out, keyed by barcode."""

    table = checkouts_table

    async def find_current(self, barcode: str) -> Optional[Checkout]:
        """The open checkout of an item with the borrower's names, or None."""
        result = await self.list_for_item(barcode, self.default_options(limit=1))
        return result.rows[0] if result.rows else None

    async def open(self, barcode: str, borrowernumber: int, date_due: date) -> Checkout:
        """Insert a checkout; the store rejects a second checkout of the same barcode."""
        record = await self.create(
            {"barcode": barcode, "borrowernumber": borrowernumber, "date_due": date_due.isoformat()}
        )
        logger.info(f"Checked out {barcode} to {borrowernumber}, due {date_due}")
        return record

    async def renew(self, barcode: str, date_due: date) -> Optional[Checkout]:
        """Move the due date of an item's checkout; None when it is not checked out."""
        sql, params = self.builder.build_update(self.table, {"barcode": barcode}, {"date_due": date_due})
        row = await self.db.fetchrow(sql, *params)
        return self.to_record(row) if row is not None else None

    async def renew_for_borrower(self, borrowernumber: int, date_due: date) -> list[Checkout]:
        """Move the due date of every checkout of a borrower."""
        sql, params = self.builder.build_update(
            self.table, {"borrowernumber": borrowernumber}, {"date_due": date_due}
        )
        rows = await self.db.fetch(sql, *params)
        logger.info(f"Renewed {len(rows)} checkouts of borrower {borrowernumber} until {date_due}")
        return [self.to_record(r) for r in rows]


# Moves the checkout of one barcode into history and returns the history row
CHECKIN_SQL = """
    WITH returned AS (
        DELETE FROM checkouts WHERE barcode = $1
        RETURNING barcode, borrowernumber, checkout_date, date_due, fine_due, fine_paid
    )
    INSERT INTO history (barcode, borrowernumber, checkout_date, date_due, returndate, fine_due, fine_paid)
    SELECT barcode, borrowernumber, checkout_date, date_due, CURRENT_DATE, fine_due, fine_paid
    FROM returned
    RETURNING {columns}
"""


class History(CheckoutEntity):
    """Returned checkouts, keyed by id. Rows stay until their fines are settled or purged."""

    table = history_table

    def default_options(self, **overrides: Any) -> QueryOptions:
        overrides.setdefault("order", "-returndate")
        return super().default_options(**overrides)

    async def check_in(self, barcode: str) -> Optional[Checkout]:
        """Return an item; None when it was not checked out."""
        sql = CHECKIN_SQL.format(columns=self.builder.select_list(self.table))
        row = await self.db.fetchrow(" ".join(sql.split()), barcode)
        if row is None:
            return None
        record = self.to_record(row)
        logger.info(f"Checked in {barcode} from borrower {record.borrowernumber}")
        return record
