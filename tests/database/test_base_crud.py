"""Generic repository behaviour, exercised through concrete repositories.

- upsert semantics (insert/replace, position, timestamps, id generation)
- delete as a no-op for unknown ids
- corrupt collections read as empty; undecodable records survive writes
- stored dates match returned dates at millisecond precision
- storage failures propagate and leave stored data unchanged
"""
import json
from datetime import datetime, timezone

import pytest

from database.entities import Customer, Product, ServiceReminder
from database.entity_repos import CustomerRepository, ProductRepository
from database.business_repos import ReminderRepository
from database.errors import StorageIOError


def _customer(customer_id="c1", name="Region Nord"):
    return Customer(id=customer_id, name=name, phone="010-1", address="Storgatan 1")


# ============================================================
# save / get
# ============================================================
class TestSave:
    """Tests for BaseCRUD.save and get_by_id."""

    async def test_insert_stamps_both_timestamps(self, mem_db, fixed_now):
        """A new record gets createdAt and updatedAt from the clock."""
        saved = await mem_db.customers.save(_customer())
        assert saved.created_at == fixed_now
        assert saved.updated_at == fixed_now
        assert await mem_db.customers.get_by_id("c1") == saved

    async def test_empty_id_gets_generated(self, mem_db):
        saved = await mem_db.customers.save(_customer(customer_id=""))
        assert saved.id
        assert await mem_db.customers.get_by_id(saved.id) is not None

    async def test_caller_object_not_mutated(self, mem_db):
        customer = _customer()
        await mem_db.customers.save(customer)
        assert customer.created_at is None

    async def test_upsert_is_idempotent(self, mem_db, clock, fixed_now):
        """Saving the same entity twice keeps one record and its createdAt."""
        first = await mem_db.customers.save(_customer())
        clock.advance(hours=1)
        second = await mem_db.customers.save(first)

        items = await mem_db.customers.get_all()
        assert [c.id for c in items] == ["c1"]
        assert second.created_at == fixed_now
        assert second.updated_at == clock()

    async def test_update_preserves_position(self, mem_db):
        """Replacing a record keeps it where it was in the collection."""
        for customer_id in ("a", "b", "c"):
            await mem_db.customers.save(_customer(customer_id))
        await mem_db.customers.save(_customer("b", name="Renamed"))

        items = await mem_db.customers.get_all()
        assert [c.id for c in items] == ["a", "b", "c"]
        assert items[1].name == "Renamed"

    async def test_update_keeps_stored_created_at(self, mem_db, clock, fixed_now):
        await mem_db.customers.save(_customer())
        clock.advance(days=1)
        replacement = _customer(name="New")
        saved = await mem_db.customers.save(replacement)
        assert saved.created_at == fixed_now

    async def test_partial_update_cannot_change_id(self, mem_db):
        await mem_db.customers.save(_customer())
        updated = await mem_db.customers.update("c1", id="other", phone="999")
        assert updated.id == "c1"
        assert updated.phone == "999"

    async def test_update_unknown_id_returns_none(self, mem_db):
        assert await mem_db.customers.update("missing", phone="1") is None

    async def test_stores_what_it_is_given(self, mem_db):
        """Empty required strings are stored as-is, not rejected."""
        saved = await mem_db.customers.save(Customer(id="c1", name="", phone="", address=""))
        assert (await mem_db.customers.get_by_id("c1")).name == ""
        assert saved.email is None

    async def test_missing_required_text_still_readable(self, mem_db):
        """A customer saved without a phone can be read back and survives later saves."""
        saved = await mem_db.customers.save(
            Customer(id="c1", name="Region Nord", phone=None, address="A"))
        assert await mem_db.customers.get_by_id("c1") == saved

        await mem_db.customers.save(_customer("c2"))
        assert [c.id for c in await mem_db.customers.get_all()] == ["c1", "c2"]

    async def test_missing_required_date_rejected(self, mem_db):
        """A save that could never be read back fails instead of writing."""
        reminder = ServiceReminder(id="r1", customer_id="c1", title="Call", due_date=None)
        with pytest.raises(ValueError):
            await mem_db.reminders.save(reminder)
        assert await mem_db.store.get("service_reminders") is None


# ============================================================
# delete
# ============================================================
class TestDelete:
    """Tests for BaseCRUD.delete."""

    async def test_delete_removes_record(self, mem_db):
        await mem_db.products.save(Product(id="p1", name="VIPER", serial_number="1",
                                           category_id="cat"))
        assert await mem_db.products.delete("p1") is True
        assert await mem_db.products.get_by_id("p1") is None

    async def test_delete_missing_is_noop(self, failing_store):
        """Deleting an unknown id never writes to the store."""
        repo = ProductRepository(failing_store)
        assert await repo.delete("nope") is False
        assert failing_store.set_calls == 0


# ============================================================
# undecodable records
# ============================================================
class TestUndecodableRecords:
    """Records the codec cannot decode are hidden from reads but never dropped."""

    BAD_DATE = {"id": "c-old", "name": "Old", "phone": "1", "address": "A",
                "createdAt": "last tuesday"}

    async def test_save_keeps_undecodable_record(self, mem_db):
        await mem_db.store.set("customers", json.dumps([self.BAD_DATE]))

        await mem_db.customers.save(_customer())
        assert [c.id for c in await mem_db.customers.get_all()] == ["c1"]

        stored = json.loads(await mem_db.store.get("customers"))
        assert stored[0] == self.BAD_DATE
        assert stored[1]["id"] == "c1"

    async def test_delete_and_update_keep_undecodable_record(self, mem_db):
        await mem_db.customers.save(_customer("c1"))
        await mem_db.customers.save(_customer("c2"))
        raw = json.loads(await mem_db.store.get("customers"))
        await mem_db.store.set("customers", json.dumps(raw + [self.BAD_DATE]))

        await mem_db.customers.update("c1", phone="999")
        await mem_db.customers.delete_permanently("c2")

        stored = json.loads(await mem_db.store.get("customers"))
        assert [r["id"] for r in stored] == ["c1", "c-old"]
        assert stored[1] == self.BAD_DATE

    async def test_undecodable_record_can_be_replaced(self, mem_db):
        """Saving an entity with the same id overwrites the raw record in place."""
        await mem_db.store.set("customers", json.dumps([self.BAD_DATE, {"id": "c2",
                               "name": "N", "phone": "1", "address": "A"}]))
        await mem_db.customers.save(_customer("c-old", name="Fixed"))

        items = await mem_db.customers.get_all()
        assert [c.id for c in items] == ["c-old", "c2"]
        assert items[0].name == "Fixed"

    async def test_undecodable_record_can_be_deleted(self, mem_db):
        await mem_db.store.set("customers", json.dumps([self.BAD_DATE]))
        assert await mem_db.customers.delete_permanently("c-old") is True
        assert json.loads(await mem_db.store.get("customers")) == []

    async def test_update_ignores_undecodable_record(self, mem_db):
        await mem_db.store.set("customers", json.dumps([self.BAD_DATE]))
        assert await mem_db.customers.update("c-old", phone="2") is None
        assert json.loads(await mem_db.store.get("customers")) == [self.BAD_DATE]


# ============================================================
# timestamp precision
# ============================================================
class TestPrecision:
    """Dates returned by save equal the dates read back."""

    async def test_real_clock_round_trip(self, mem_db):
        repo = CustomerRepository(mem_db.store)
        saved = await repo.save(_customer())
        loaded = await repo.get_by_id("c1")
        assert loaded == saved
        assert saved.created_at.microsecond % 1000 == 0

    async def test_sub_millisecond_input_truncated(self, mem_db):
        due = datetime(2024, 6, 20, 9, 30, 15, 123456, tzinfo=timezone.utc)
        repo = ReminderRepository(mem_db.store)
        saved = await repo.save(ServiceReminder(id="r1", customer_id="c1",
                                                title="Call", due_date=due))
        assert saved.due_date == datetime(2024, 6, 20, 9, 30, 15, 123000,
                                          tzinfo=timezone.utc)
        assert await repo.get_by_id("r1") == saved

    async def test_naive_input_treated_as_utc(self, mem_db):
        repo = ReminderRepository(mem_db.store)
        saved = await repo.save(ServiceReminder(id="r1", customer_id="c1", title="Call",
                                                due_date=datetime(2024, 6, 20, 9, 0)))
        assert saved.due_date.tzinfo is not None
        assert await repo.get_by_id("r1") == saved

    async def test_partial_update_truncates(self, mem_db):
        repo = ReminderRepository(mem_db.store)
        await repo.save(ServiceReminder(id="r1", customer_id="c1", title="Call",
                                        due_date=datetime(2024, 6, 20, tzinfo=timezone.utc)))
        done = datetime(2024, 6, 21, 8, 0, 0, 999999, tzinfo=timezone.utc)
        updated = await repo.update("r1", completed_at=done)
        assert updated.completed_at.microsecond == 999000
        assert await repo.get_by_id("r1") == updated


# ============================================================
# corrupt data and storage failures
# ============================================================
class TestFailures:
    """Tests for corrupt collections and adapter failures."""

    async def test_corrupt_collection_reads_empty(self, mem_db):
        await mem_db.store.set("customers", "{definitely not json")
        assert await mem_db.customers.get_all() == []
        assert await mem_db.customers.get_by_id("c1") is None

    async def test_save_over_corrupt_collection_recovers(self, mem_db):
        """A malformed collection is replaced by the next save."""
        await mem_db.store.set("customers", "[{broken")
        await mem_db.customers.save(_customer())
        assert [c.id for c in await mem_db.customers.get_all()] == ["c1"]

    async def test_read_failure_propagates(self, failing_store):
        repo = CustomerRepository(failing_store)
        failing_store.fail_get = True
        with pytest.raises(StorageIOError) as exc_info:
            await repo.get_all()
        assert exc_info.value.key == "customers"
        assert exc_info.value.operation == "get"

    async def test_write_failure_leaves_data_unchanged(self, failing_store):
        """A failed write raises and the stored record is untouched."""
        repo = CustomerRepository(failing_store)
        await repo.save(_customer())

        failing_store.fail_set = True
        with pytest.raises(StorageIOError):
            await repo.save(_customer(name="Changed"))
        with pytest.raises(StorageIOError):
            await repo.delete("c1")

        failing_store.fail_set = False
        stored = await repo.get_by_id("c1")
        assert stored.name == "Region Nord"
