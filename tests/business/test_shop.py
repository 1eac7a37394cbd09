"""TailorShop facade tests.

Covers:
- Adding, opening and deleting customers through the cached list
- Debounced profile edits (flush and real timer)
- Settings, export/import files, clear
"""
import json

import pytest
import pytest_asyncio

from business.shop import BACKUP_TASK_ID, CustomerCache, TailorShop
from config.settings import settings
from config.shop_config import MEASUREMENT_FIELDS
from database import (
    DatabaseManager, EventKind, InvalidImportFormatError, NotFoundError,
    ValidationFailedError,
)
from tests.conftest import make_customer, wait_for


@pytest_asyncio.fixture
async def shop(db_url):
    """Yield a started TailorShop with a long debounce delay."""
    tailor_shop = TailorShop(DatabaseManager(database_url=db_url), autosave_delay=60)
    await tailor_shop.start()
    try:
        yield tailor_shop
    finally:
        await tailor_shop.shutdown()


# ============================================================
# List and profile
# ============================================================
class TestCustomerList:
    """Tests for add / open / search / delete."""

    @pytest.mark.asyncio
    async def test_start_registers_backup_job(self, shop):
        assert shop.scheduler.running
        assert shop.scheduler.scheduler.get_job(BACKUP_TASK_ID) is not None

    @pytest.mark.asyncio
    async def test_add_customer_opens_profile(self, shop):
        customer = await shop.add_customer("  Ali Khan ", "0799123456")
        assert customer.name == "Ali Khan"
        assert shop.current.id == customer.id
        assert [c.id for c in shop.cache] == [customer.id]

    @pytest.mark.asyncio
    async def test_added_ids_are_unique(self, shop):
        ids = set()
        for index in range(5):
            customer = await shop.add_customer(f"Customer {index}", "0799123456")
            ids.add(customer.id)
        assert len(ids) == 5
        assert len(shop.cache) == 5

    @pytest.mark.asyncio
    async def test_failed_add_leaves_cache_unchanged(self, shop):
        existing = await shop.add_customer("Ali Khan", "0799123456")
        with pytest.raises(ValidationFailedError):
            await shop.add_customer("A", "12")
        assert [c.id for c in shop.cache] == [existing.id]
        assert shop.current.id == existing.id

    @pytest.mark.asyncio
    async def test_open_by_id(self, shop):
        first = await shop.add_customer("Ali Khan", "0799123456")
        await shop.add_customer("Omar", "0700111222")
        assert shop.open(first.id) is shop.current
        assert shop.current.name == "Ali Khan"

        shop.close_profile()
        assert shop.current is None
        with pytest.raises(NotFoundError):
            shop.open("9999")

    @pytest.mark.asyncio
    async def test_search(self, shop):
        await shop.add_customer("Ali Khan", "0799123456")
        await shop.add_customer("Omar", "0700111222")

        results = await shop.search("omar")
        assert [c.name for c in results] == ["Omar"]
        assert len(await shop.search("  ")) == 2

    @pytest.mark.asyncio
    async def test_delete_customer(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_notes("pending edit")
        assert shop.scheduler.has_pending(customer.id)

        await shop.delete_customer(customer.id)

        assert shop.current is None
        assert len(shop.cache) == 0
        assert not shop.scheduler.has_pending(customer.id)
        with pytest.raises(NotFoundError):
            await shop.delete_customer("9999")

    @pytest.mark.asyncio
    async def test_clear_all(self, shop):
        await shop.add_customer("Ali Khan", "0799123456")
        await shop.add_customer("Omar", "0700111222")
        shop.update_notes("pending edit")

        assert await shop.clear_all() == 2
        assert len(shop.cache) == 0
        assert shop.current is None
        assert shop.scheduler.pending_debounced() == []

    @pytest.mark.asyncio
    async def test_subscribe(self, shop):
        events = []
        shop.subscribe(lambda kind, payload: events.append(kind))
        await shop.add_customer("Ali Khan", "0799123456")
        assert events == [EventKind.CUSTOMER_SAVED]


# ============================================================
# Profile edits
# ============================================================
class TestProfileEdits:
    """Tests for debounced editing of the open profile."""

    @pytest.mark.asyncio
    async def test_edit_without_profile(self, shop):
        with pytest.raises(NotFoundError):
            shop.update_price(500)

    @pytest.mark.asyncio
    async def test_price_and_payment_saved_once(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        saves = []
        shop.subscribe(lambda kind, payload: saves.append(kind))

        shop.update_price("500")
        assert shop.toggle_payment() is True
        shop.update_measurement(MEASUREMENT_FIELDS[0], "42")

        # 防抖期内尚未写入
        stored = await shop.db.get_by_id(customer.id)
        assert stored.sewing_price is None
        assert len(shop.scheduler.pending_debounced()) == 1

        assert await shop.scheduler.flush_pending() == 1
        assert saves == [EventKind.CUSTOMER_SAVED]

        stored = await shop.db.get_by_id(customer.id)
        assert stored.sewing_price == 500
        assert stored.payment_received is True
        assert stored.payment_date is not None
        assert stored.measurements[MEASUREMENT_FIELDS[0]] == 42.0

    @pytest.mark.asyncio
    async def test_models_orders_and_day(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.select_model("collar", "ملی")
        assert shop.toggle_model_tag("features", "جیب رو") is True
        shop.set_delivery_day("جمعه")
        order = shop.add_order("two shirts")
        shop.add_order("one coat")
        assert shop.remove_order(order.id) is True
        assert shop.remove_order("missing") is False

        saved = await shop.save_current()
        assert saved.id == customer.id
        assert not shop.scheduler.has_pending(customer.id)

        stored = await shop.db.get_by_id(customer.id)
        assert stored.models.collar == "ملی"
        assert stored.models.features == ["جیب رو"]
        assert stored.delivery_day == "جمعه"
        assert [o.details for o in stored.orders] == ["one coat"]

    @pytest.mark.asyncio
    async def test_invalid_edit_is_not_persisted(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_measurement(MEASUREMENT_FIELDS[0], "tall")

        await shop.scheduler.flush_pending()

        stored = await shop.db.get_by_id(customer.id)
        assert stored.measurements[MEASUREMENT_FIELDS[0]] == ""
        with pytest.raises(ValidationFailedError):
            await shop.save_current()

    @pytest.mark.asyncio
    async def test_auto_save_disabled(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        await shop.save_setting("auto_save", False)
        assert await shop.get_setting("auto_save") is False

        shop.update_notes("no autosave")
        assert not shop.scheduler.has_pending(customer.id)

        await shop.save_current()
        assert (await shop.db.get_by_id(customer.id)).notes == "no autosave"

    @pytest.mark.asyncio
    async def test_pending_edit_survives_add(self, shop):
        first = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_price(500)

        # 添加新顾客会重新加载列表，未写入的编辑仍保留在缓存中
        await shop.add_customer("Omar Zai", "0700111222")
        assert shop.cache.get(first.id).sewing_price == 500

        await shop.scheduler.flush_pending()
        assert (await shop.db.get_by_id(first.id)).sewing_price == 500

    @pytest.mark.asyncio
    async def test_pending_edit_survives_blank_search(self, shop):
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_notes("measure again next week")

        await shop.search("")
        assert shop.current.notes == "measure again next week"

        await shop.shutdown()
        db = DatabaseManager(database_url=shop.db.database_url)
        await db.init()
        try:
            stored = await db.get_by_id(customer.id)
            assert stored.notes == "measure again next week"
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_debounce_timer_fires(self, db_url):
        shop = TailorShop(DatabaseManager(database_url=db_url), autosave_delay=0.05)
        await shop.start()
        try:
            customer = await shop.add_customer("Ali Khan", "0799123456")
            shop.update_notes("first")
            shop.update_notes("second")

            async def saved():
                stored = await shop.db.get_by_id(customer.id)
                return stored.notes == "second"

            assert await wait_for(saved)
        finally:
            await shop.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_flushes_pending_edits(self, db_url):
        shop = TailorShop(DatabaseManager(database_url=db_url), autosave_delay=60)
        await shop.start()
        customer = await shop.add_customer("Ali Khan", "0799123456")
        shop.update_price(750)
        await shop.shutdown()

        db = DatabaseManager(database_url=db_url)
        await db.init()
        try:
            assert (await db.get_by_id(customer.id)).sewing_price == 750
        finally:
            await db.close()


# ============================================================
# Files and stats
# ============================================================
class TestFilesAndStats:
    """Tests for export_to_file / import_from_file / stats."""

    @pytest.mark.asyncio
    async def test_export_and_import_file(self, shop, tmp_path):
        first = await shop.add_customer("Ali Khan", "0799123456")
        await shop.add_customer("Omar", "0700111222")
        path = await shop.export_to_file(str(tmp_path / "backup.json"))

        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        assert payload["totalCustomers"] == 2
        assert len(await shop.db.list_backups()) == 1

        await shop.clear_all()
        shop_result = await shop.import_from_file(path)
        assert shop_result.imported == 2
        assert len(shop.cache) == 2
        assert shop.current is None
        assert shop.open(first.id).name == "Ali Khan"

    @pytest.mark.asyncio
    async def test_export_default_path(self, shop, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "export_dir", str(tmp_path / "exports"))
        path = await shop.export_to_file()
        assert path.startswith(str(tmp_path / "exports"))
        assert path.endswith(".json")

    @pytest.mark.asyncio
    async def test_import_invalid_json(self, shop, tmp_path):
        await shop.add_customer("Ali Khan", "0799123456")
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InvalidImportFormatError):
            await shop.import_from_file(str(path))
        assert len(shop.cache) == 1

    @pytest.mark.asyncio
    async def test_import_merge(self, shop, tmp_path):
        await shop.add_customer("Ali Khan", "0799123456")
        path = tmp_path / "extra.json"
        path.write_text(json.dumps({"customers": [
            {"id": "7777", "name": "Omar", "phone": "0700111222"},
        ]}), encoding="utf-8")

        result = await shop.import_from_file(str(path), replace=False)
        assert result.imported == 1
        assert len(shop.cache) == 2

    @pytest.mark.asyncio
    async def test_stats(self, shop):
        await shop.add_customer("Ali Khan", "0799123456")
        shop.toggle_payment()
        shop.add_order("two shirts")
        await shop.save_current()
        await shop.add_customer("Omar", "0700111222")

        assert shop.stats() == {
            "total_customers": 2,
            "total_orders": 1,
            "paid_customers": 1,
        }


# ============================================================
# CustomerCache
# ============================================================
class TestCustomerCache:
    """Tests for CustomerCache.replace."""

    def test_replace_keeps_objects_with_unsaved_edits(self):
        cache = CustomerCache()
        edited = make_customer("1001")
        cache.replace([edited, make_customer("1002")])
        cache.select("1002")
        edited.set_price(500)

        fresh = [make_customer("1001"), make_customer("1002")]
        cache.replace(fresh, keep_ids=["1001", "9999"])

        assert cache.get("1001") is edited
        assert cache.get("1002") is fresh[1]
        assert cache.selected is fresh[1]

    def test_replace_drops_vanished_selection(self):
        cache = CustomerCache()
        cache.replace([make_customer("1001")])
        cache.select("1001")
        cache.replace([make_customer("1002")], keep_ids=["1001"])
        assert cache.selected_id is None
        assert [c.id for c in cache] == ["1002"]
