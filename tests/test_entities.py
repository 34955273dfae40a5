"""
Tests for the generic entity contract (get, read, create, update, remove)
and the borrower / item specific operations
"""

from datetime import date, timedelta

import pytest

from entities import gather_all
from errors import Conflict, EntityNotFound, InvalidKey, StoreError, ValidationError
from query import QueryOptions
from tests.sample_data import BORROWER_ROW, ITEM_ROW, checkout_row


# ============================================================================
# get
# ============================================================================

class TestGet:

    @pytest.mark.asyncio
    async def test_get_without_flags_returns_base_entity(self, entities, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")

        borrower = await entities.borrowers.get("1042", {})

        assert borrower.surname == "Smith"
        dumped = borrower.model_dump(exclude_unset=True)
        assert "items" not in dumped and "fees" not in dumped and "history" not in dumped
        assert len(fake_db.calls) == 1
        assert fake_db.calls[0][2] == [1042]

    @pytest.mark.asyncio
    async def test_get_with_items_flag(self, entities, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("FROM checkouts c", [checkout_row(title="Der Grüffelo")], "fetch")

        borrower = await entities.borrowers.get("1042", {"items": True, "history": False})

        assert [c.title for c in borrower.items] == ["Der Grüffelo"]
        dumped = borrower.model_dump(exclude_unset=True)
        assert "items" in dumped and "history" not in dumped
        joined = fake_db.statements("FROM checkouts c")[0]
        assert "LEFT JOIN items j ON j.barcode = c.barcode" in joined
        assert "WHERE c.borrowernumber = $1" in joined

    @pytest.mark.asyncio
    async def test_fee_total_counts_only_outstanding_fines(self, entities, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("FROM checkouts c", [
            checkout_row("10001", fine_due=5, fine_paid=0),
            checkout_row("10002", fine_due=3, fine_paid=3),
        ], "fetch")

        borrower = await entities.borrowers.get(1042, {"fees": True})

        assert borrower.fees.total == 5
        assert len(borrower.fees.items) == 2
        assert borrower.fees.history == []
        fee_queries = fake_db.statements("c.fine_due > c.fine_paid")
        assert len(fee_queries) == 2
        assert any("FROM history c" in sql for sql in fee_queries)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entity_name,key", [
        ("borrowers", "1"),
        ("items", "nope"),
        ("checkouts", "nope"),
        ("history", "1"),
    ])
    async def test_get_missing_key_is_not_found(self, entities, entity_name, key):
        entity = getattr(entities, entity_name)
        with pytest.raises(EntityNotFound) as exc:
            await entity.get(key)
        assert exc.value.http_status_code == 404
        assert exc.value.code == "ENTITY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_get_with_invalid_key(self, entities, fake_db):
        with pytest.raises(InvalidKey):
            await entities.borrowers.get("abc")
        assert fake_db.calls == []

    @pytest.mark.asyncio
    async def test_item_flags(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("FROM checkouts c", [checkout_row(surname="Smith")], "fetch")
        fake_db.on("FROM history c", [checkout_row(id=1, returndate="2026-09-10")], "fetch")

        item = await entities.items.get("10001", {"checkout": True, "history": True})

        assert item.checkout.surname == "Smith"
        assert item.history[0].returndate == date(2026, 9, 10)
        history_sql = fake_db.statements("FROM history c")[0]
        assert "LEFT JOIN borrowers j ON j.borrowernumber = c.borrowernumber" in history_sql
        assert "ORDER BY c.returndate DESC" in history_sql


# ============================================================================
# read
# ============================================================================

class TestRead:

    @pytest.mark.asyncio
    async def test_read_without_count_issues_no_count_query(self, entities, fake_db):
        fake_db.on("FROM borrowers", [BORROWER_ROW], "fetch")

        result = await entities.borrowers.read({"surname": "Smith", "offset": "0"})

        assert [b.borrowernumber for b in result.rows] == [1042]
        assert result.count is None
        assert fake_db.statements("COUNT(*)") == []

    @pytest.mark.asyncio
    async def test_read_with_count(self, entities, fake_db):
        fake_db.on("COUNT(*)", 42, "fetchval")
        fake_db.on("FROM borrowers", [BORROWER_ROW], "fetch")

        result = await entities.borrowers.read(
            {"surname": "Smith"}, "and", QueryOptions(limit=1, return_count=True)
        )

        assert result.count == 42
        assert len(result.rows) == 1
        count_sql = fake_db.statements("COUNT(*)")[0]
        assert "LIMIT" not in count_sql

    @pytest.mark.asyncio
    async def test_failed_count_raises_after_both_queries_settle(self, entities, fake_db):
        def fail(params):
            raise StoreError("count failed")

        fake_db.on("COUNT(*)", fail, "fetchval")
        fake_db.on("FROM borrowers", [BORROWER_ROW], "fetch")

        with pytest.raises(StoreError, match="count failed"):
            await entities.borrowers.read({}, "and", QueryOptions(return_count=True))

        assert sorted(method for method, _, _ in fake_db.calls) == ["fetch", "fetchval"]

    @pytest.mark.asyncio
    async def test_gather_all_returns_results_in_order(self):
        async def value(v):
            return v

        assert await gather_all(value(1), value(2)) == [1, 2]

    @pytest.mark.asyncio
    async def test_pages_cover_every_row_once(self, entities, fake_db):
        rows = [dict(ITEM_ROW, id=n, barcode=f"{n:05d}") for n in range(1, 8)]

        def page(params):
            limit, offset = params[-2], params[-1]
            return rows[offset:offset + limit]

        fake_db.on("FROM items", page, "fetch")

        seen, offset = [], 0
        while True:
            result = await entities.items.read({}, "and", QueryOptions(offset=offset, limit=3))
            if not result.rows:
                break
            seen.extend(item.barcode for item in result.rows)
            offset += 3

        assert len(seen) == len(rows)
        assert len(set(seen)) == len(rows)


# ============================================================================
# create / update / remove
# ============================================================================

class TestWrites:

    @pytest.mark.asyncio
    async def test_create_reports_every_invalid_field(self, entities, fake_db):
        with pytest.raises(ValidationError) as exc:
            await entities.items.create({"title": "No barcode", "year": "soon", "state": "BORROWED"})

        assert sorted(exc.value.fields) == ["barcode", "state", "year"]
        assert exc.value.http_status_code == 400
        assert fake_db.calls == []

    @pytest.mark.asyncio
    async def test_create_round_trip(self, entities, fake_db):
        new = {"surname": "Smith", "firstname": "Ada, Max", "contactname": "Eva Smith",
               "phone": "0301234", "emailaddress": "eva@example.org"}
        fake_db.on("INSERT INTO borrowers", BORROWER_ROW, "fetchrow")
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")

        created = await entities.borrowers.create(new)
        fetched = await entities.borrowers.get(created.borrowernumber)

        insert_sql = fake_db.statements("INSERT INTO borrowers")[0]
        assert "borrowernumber" not in insert_sql.split("RETURNING")[0]
        assert "id," not in insert_sql.split("RETURNING")[0]
        for name, value in new.items():
            assert getattr(fetched, name) == value

    @pytest.mark.asyncio
    async def test_update_is_partial(self, entities, fake_db):
        fake_db.on("UPDATE borrowers", dict(BORROWER_ROW, phone="999"), "fetchrow")

        updated = await entities.borrowers.update({"borrowernumber": "1042", "phone": "999", "colour": "red"})

        assert updated.phone == "999"
        method, sql, params = fake_db.calls[0]
        assert sql.startswith("UPDATE borrowers SET phone = $1 WHERE borrowernumber = $2")
        assert params == ["999", 1042]

    @pytest.mark.asyncio
    async def test_update_by_id(self, entities, fake_db):
        fake_db.on("UPDATE items", ITEM_ROW, "fetchrow")

        await entities.items.update({"id": 3, "barcode": "10001", "year": "2001"})

        _, sql, params = fake_db.calls[0]
        assert "WHERE id = $3" in sql
        assert params == ["10001", 2001, 3]

    @pytest.mark.asyncio
    async def test_update_needs_a_key(self, entities):
        with pytest.raises(ValidationError):
            await entities.borrowers.update({"phone": "999"})

    @pytest.mark.asyncio
    async def test_update_missing_row(self, entities):
        with pytest.raises(EntityNotFound):
            await entities.borrowers.update({"borrowernumber": 5, "phone": "999"})

    @pytest.mark.asyncio
    async def test_update_cannot_blank_required_field(self, entities):
        with pytest.raises(ValidationError) as exc:
            await entities.borrowers.update({"borrowernumber": 1042, "emailaddress": ""})
        assert exc.value.fields == ["emailaddress"]

    @pytest.mark.asyncio
    async def test_remove_borrower_deactivates(self, entities, fake_db):
        fake_db.on("UPDATE borrowers", dict(BORROWER_ROW, state="INACTIVE"), "fetchrow")

        assert await entities.borrowers.remove("1042") is None

        _, sql, params = fake_db.calls[0]
        assert sql.startswith("UPDATE borrowers SET state = $1 WHERE borrowernumber = $2")
        assert params == ["INACTIVE", 1042]
        assert fake_db.statements("DELETE") == []

    @pytest.mark.asyncio
    async def test_remove_history_deletes(self, entities, fake_db):
        fake_db.on("DELETE FROM history", {"id": 5}, "fetchrow")

        await entities.history.remove("5")

        assert fake_db.statements("DELETE FROM history WHERE id = $1")

    @pytest.mark.asyncio
    async def test_remove_missing_row(self, entities):
        with pytest.raises(EntityNotFound):
            await entities.checkouts.remove("10001")


# ============================================================================
# Custom operations
# ============================================================================

class TestCirculation:

    def due(self, days=21):
        return date.today() + timedelta(days=days)

    @pytest.mark.asyncio
    async def test_checkout(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("INSERT INTO checkouts", checkout_row(date_due=self.due().isoformat()), "fetchrow")

        item = await entities.items.checkout("10001", {"borrowernumber": "1042"})

        assert item.checkout.borrowernumber == 1042
        _, _, params = next(c for c in fake_db.calls if "INSERT INTO checkouts" in c[1])
        assert params == ["10001", 1042, self.due()]

    @pytest.mark.asyncio
    async def test_checkout_requires_borrowernumber(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        with pytest.raises(ValidationError):
            await entities.items.checkout("10001", {})

    @pytest.mark.asyncio
    async def test_checkout_of_lost_item(self, entities, fake_db):
        fake_db.on("FROM items WHERE", dict(ITEM_ROW, state="LOST"), "fetchrow")
        with pytest.raises(Conflict) as exc:
            await entities.items.checkout("10001", {"borrowernumber": 1042})
        assert exc.value.code == "ITEM_NOT_CIRCULATING"

    @pytest.mark.asyncio
    async def test_checkout_of_item_already_out(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("FROM checkouts WHERE", checkout_row(), "fetchrow")
        with pytest.raises(Conflict) as exc:
            await entities.items.checkout("10001", {"borrowernumber": 1042})
        assert exc.value.code == "ITEM_CHECKED_OUT"

    @pytest.mark.asyncio
    async def test_checkout_to_inactive_borrower(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("FROM borrowers WHERE", dict(BORROWER_ROW, state="INACTIVE"), "fetchrow")
        with pytest.raises(Conflict) as exc:
            await entities.items.checkout("10001", {"borrowernumber": 1042})
        assert exc.value.code == "BORROWER_INACTIVE"
        assert fake_db.statements("INSERT") == []

    @pytest.mark.asyncio
    async def test_checkin_moves_checkout_to_history(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("WITH returned AS", checkout_row(returndate=date.today().isoformat()), "fetchrow")

        item = await entities.items.checkin("10001")

        assert item.model_dump(exclude_unset=True)["checkout"] is None
        (checkin_sql,) = fake_db.statements("WITH returned AS")
        assert "DELETE FROM checkouts WHERE barcode = $1" in checkin_sql
        assert "INSERT INTO history" in checkin_sql

    @pytest.mark.asyncio
    async def test_checkin_of_item_not_out(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        with pytest.raises(Conflict) as exc:
            await entities.items.checkin("10001")
        assert exc.value.code == "ITEM_NOT_CHECKED_OUT"

    @pytest.mark.asyncio
    async def test_renew(self, entities, fake_db):
        fake_db.on("FROM items WHERE", ITEM_ROW, "fetchrow")
        fake_db.on("UPDATE checkouts", checkout_row(date_due=self.due().isoformat()), "fetchrow")

        item = await entities.items.renew("10001")

        assert item.checkout.date_due == self.due()

    @pytest.mark.asyncio
    async def test_pay_fees_is_one_statement(self, entities, fake_db):
        fake_db.on("WITH paid_checkouts", 2, "fetchval")
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")

        borrower = await entities.borrowers.pay_fees("1042")

        assert borrower.fees.total == 0
        writes = [c for c in fake_db.calls if "UPDATE" in c[1]]
        assert len(writes) == 1
        assert writes[0][2] == [1042]

    @pytest.mark.asyncio
    async def test_renew_all_items(self, entities, fake_db):
        fake_db.on("FROM borrowers WHERE", BORROWER_ROW, "fetchrow")
        fake_db.on("UPDATE checkouts", [checkout_row(), checkout_row("10002")], "fetch")

        borrower = await entities.borrowers.renew_all_items("1042")

        _, sql, params = next(c for c in fake_db.calls if "UPDATE checkouts" in c[1])
        assert sql.startswith("UPDATE checkouts SET date_due = $1 WHERE borrowernumber = $2")
        assert params == [self.due(), 1042]
        assert borrower.items == []

    @pytest.mark.asyncio
    async def test_pay_fee_on_history_row(self, entities, fake_db):
        fake_db.on("UPDATE history", checkout_row(id=5, fine_due=2, fine_paid=2), "fetchrow")

        row = await entities.history.pay_fee("5")

        assert row.outstanding_fine == 0
        assert fake_db.calls[0][2] == [5]
