import uuid
from datetime import date, timedelta
from unittest import mock

from django.core.cache import cache
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework.throttling import AnonRateThrottle

from config.settings import balance_cache_enabled
from inventory import history, ledger, lots, transfers
from inventory.exceptions import InsufficientStock, InvalidOperation, NotFound
from inventory.models import Item, Lot, Movement, StockLedgerEntry, Warehouse


class InventoryFixturesMixin:
    def create_fixtures(self):
        self.item = Item.objects.create(name="Nitrile gloves", unit_of_measure="box", minimum_quantity=5, maximum_quantity=500)
        self.other_item = Item.objects.create(name="Saline 500ml", unit_of_measure="bottle")
        self.warehouse_a = Warehouse.objects.create(name="Warehouse A")
        self.warehouse_b = Warehouse.objects.create(name="Warehouse B")
        self.inactive_warehouse = Warehouse.objects.create(name="Closed annex", is_active=False)
        self.lot = Lot.objects.create(
            item=self.item,
            name="L1",
            quantity=100,
            purchase_order_ref="PO-77",
            manufactured_on=date(2024, 1, 10),
            expires_on=date(2026, 1, 10),
        )
        self.other_lot = Lot.objects.create(item=self.other_item, name="S1")

    def seed_balance(self, warehouse, lot, quantity):
        return StockLedgerEntry.objects.create(warehouse=warehouse, item=lot.item, lot=lot, quantity=quantity)

    def total_units(self):
        return sum(StockLedgerEntry.objects.values_list("quantity", flat=True))


class StockLedgerTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_balance_of_absent_triple_is_zero(self):
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 0)

    def test_credit_creates_row_with_item_thresholds(self):
        entry = ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 40)

        self.assertEqual(entry.quantity, 40)
        self.assertEqual(entry.minimum_quantity, 5)
        self.assertEqual(entry.maximum_quantity, 500)

    @override_settings(INVENTORY_DEFAULT_MINIMUM_QUANTITY=10, INVENTORY_DEFAULT_MAXIMUM_QUANTITY=100)
    def test_credit_falls_back_to_default_thresholds(self):
        entry = ledger.credit(self.warehouse_a.id, self.other_item.id, self.other_lot.id, 3)

        self.assertEqual(entry.minimum_quantity, 10)
        self.assertEqual(entry.maximum_quantity, 100)

    def test_repeated_credits_keep_a_single_row(self):
        ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 10)
        ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 15)
        ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 5)

        rows = StockLedgerEntry.objects.filter(warehouse=self.warehouse_a, item=self.item, lot=self.lot)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().quantity, 30)

    def test_credit_after_losing_insert_race_folds_into_existing_row(self):
        existing = self.seed_balance(self.warehouse_a, self.lot, 10)

        # The first lookup misses the row, as when another transaction inserts it concurrently.
        with mock.patch("inventory.ledger.get_entry_for_update", side_effect=[None, existing]):
            entry = ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 5)

        rows = StockLedgerEntry.objects.filter(warehouse=self.warehouse_a, item=self.item, lot=self.lot)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().quantity, 15)
        self.assertEqual(entry.id, existing.id)

    def test_total_for_item_sums_active_rows_across_warehouses(self):
        self.seed_balance(self.warehouse_a, self.lot, 30)
        self.seed_balance(self.warehouse_b, self.lot, 12)
        StockLedgerEntry.objects.create(warehouse=self.inactive_warehouse, item=self.item, lot=self.lot, quantity=99, is_active=False)
        self.seed_balance(self.warehouse_a, self.other_lot, 7)

        self.assertEqual(ledger.total_for_item(self.item.id), 42)
        self.assertEqual(ledger.total_for_item(self.other_item.id), 7)

    def test_total_for_item_without_stock_is_zero(self):
        self.assertEqual(ledger.total_for_item(self.item.id), 0)
        with self.assertRaises(NotFound):
            ledger.total_for_item(uuid.uuid4())

    def test_debit_reduces_balance(self):
        self.seed_balance(self.warehouse_a, self.lot, 100)

        entry = ledger.debit(self.warehouse_a.id, self.item.id, self.lot.id, 30)

        self.assertEqual(entry.quantity, 70)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 70)

    def test_debit_to_zero_removes_row(self):
        self.seed_balance(self.warehouse_a, self.lot, 12)

        entry = ledger.debit(self.warehouse_a.id, self.item.id, self.lot.id, 12)

        self.assertIsNone(entry)
        self.assertFalse(StockLedgerEntry.objects.filter(warehouse=self.warehouse_a, lot=self.lot).exists())

    def test_overdraw_raises_and_leaves_balance(self):
        self.seed_balance(self.warehouse_a, self.lot, 20)

        with self.assertRaises(InsufficientStock) as ctx:
            ledger.debit(self.warehouse_a.id, self.item.id, self.lot.id, 21)

        self.assertEqual(ctx.exception.available, 20)
        self.assertEqual(ctx.exception.requested, 21)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 20)

    def test_debit_of_missing_row_reports_zero_available(self):
        with self.assertRaises(InsufficientStock) as ctx:
            ledger.debit(self.warehouse_a.id, self.item.id, self.lot.id, 1)

        self.assertIn("Available: 0, Requested: 1", str(ctx.exception))

    def test_non_positive_quantities_are_rejected(self):
        self.seed_balance(self.warehouse_a, self.lot, 5)

        with self.assertRaises(InvalidOperation):
            ledger.credit(self.warehouse_a.id, self.item.id, self.lot.id, 0)
        with self.assertRaises(InvalidOperation):
            ledger.debit(self.warehouse_a.id, self.item.id, self.lot.id, -3)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 5)

    def test_balance_never_goes_negative_over_a_sequence(self):
        operations = [("credit", 10), ("debit", 4), ("debit", 7), ("credit", 2), ("debit", 8), ("debit", 1)]
        for operation, quantity in operations:
            try:
                getattr(ledger, operation)(self.warehouse_a.id, self.item.id, self.lot.id, quantity)
            except InsufficientStock:
                pass
            self.assertGreaterEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 0)

        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 0)

    def test_availability_check(self):
        self.seed_balance(self.warehouse_a, self.lot, 8)

        self.assertTrue(ledger.is_available(self.warehouse_a.id, self.item.id, self.lot.id, 8))
        self.assertFalse(ledger.is_available(self.warehouse_a.id, self.item.id, self.lot.id, 9))
        self.assertFalse(ledger.is_available(self.warehouse_a.id, self.item.id, None, 1))

        payload = ledger.check_availability(self.warehouse_a.id, self.item.id, self.lot.id, 9)
        self.assertFalse(payload["available"])
        self.assertEqual(payload["available_quantity"], 8)
        self.assertEqual(payload["message"], "Insufficient stock. Available: 8, Requested: 9")

        missing = ledger.check_availability(self.warehouse_b.id, self.item.id, self.lot.id, 1)
        self.assertEqual(missing["available_quantity"], 0)
        self.assertEqual(missing["message"], "Item not stocked in this warehouse and lot.")

    def test_low_stock_entries_use_row_thresholds(self):
        low = StockLedgerEntry.objects.create(
            warehouse=self.warehouse_a, item=self.item, lot=self.lot, quantity=3, minimum_quantity=5
        )
        StockLedgerEntry.objects.create(
            warehouse=self.warehouse_b, item=self.item, lot=self.lot, quantity=50, minimum_quantity=5
        )

        self.assertEqual([entry.id for entry in ledger.low_stock_entries()], [low.id])
        self.assertEqual(ledger.low_stock_entries(warehouse_id=self.warehouse_b.id), [])
        self.assertTrue(low.is_below_minimum)

    def test_list_balances_filters(self):
        self.seed_balance(self.warehouse_a, self.lot, 4)
        self.seed_balance(self.warehouse_b, self.lot, 6)
        self.seed_balance(self.warehouse_b, self.other_lot, 9)

        self.assertEqual(len(ledger.list_balances()), 3)
        self.assertEqual(len(ledger.list_balances(warehouse_id=self.warehouse_b.id)), 2)
        rows = ledger.list_balances(warehouse_id=self.warehouse_b.id, item_id=self.item.id)
        self.assertEqual([row.quantity for row in rows], [6])


class LotRegistryTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_get_lot_raises_not_found(self):
        with self.assertRaises(NotFound):
            lots.get_lot(uuid.uuid4())

    def test_split_copies_metadata_and_references_source(self):
        derived = lots.split_lot(self.lot, 30)

        self.assertNotEqual(derived.id, self.lot.id)
        self.assertEqual(derived.item_id, self.item.id)
        self.assertEqual(derived.quantity, 30)
        self.assertEqual(derived.manufactured_on, self.lot.manufactured_on)
        self.assertEqual(derived.expires_on, self.lot.expires_on)
        self.assertEqual(derived.purchase_order_ref, "PO-77")
        self.assertEqual(derived.name, "L1 (Split)")
        self.assertEqual(derived.note, f"Derived from lot {self.lot.id}")
        self.assertEqual(derived.derived_from_id, self.lot.id)
        self.assertFalse(StockLedgerEntry.objects.filter(lot=derived).exists())

    def test_expiry_checks(self):
        self.assertFalse(lots.is_expired(self.lot, today=date(2026, 1, 10)))
        self.assertTrue(lots.is_expired(self.lot, today=date(2026, 1, 11)))

        self.assertFalse(lots.is_near_expiry(self.lot, horizon_days=30, today=date(2025, 12, 1)))
        self.assertTrue(lots.is_near_expiry(self.lot, horizon_days=30, today=date(2025, 12, 20)))

        self.assertFalse(lots.is_expired(self.other_lot))
        self.assertFalse(lots.is_near_expiry(self.other_lot, horizon_days=10_000))

    def test_expired_and_near_expiry_listings(self):
        today = date(2025, 12, 20)
        expired = Lot.objects.create(item=self.item, name="OLD", expires_on=date(2025, 11, 1))

        self.assertEqual(list(lots.expired_lots(today=today)), [expired])
        self.assertEqual(list(lots.near_expiry_lots(horizon_days=30, today=today)), [self.lot])
        self.assertEqual(list(lots.near_expiry_lots(horizon_days=5, today=today)), [])

    def test_lots_with_stock_reports_flags(self):
        self.seed_balance(self.warehouse_a, self.lot, 25)
        self.seed_balance(self.warehouse_b, self.other_lot, 2)

        rows = lots.lots_with_stock(warehouse_id=self.warehouse_a.id, today=date(2026, 2, 1))

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["lot_id"], self.lot.id)
        self.assertEqual(rows[0]["available_quantity"], 25)
        self.assertEqual(rows[0]["warehouse_name"], "Warehouse A")
        self.assertTrue(rows[0]["expired"])
        self.assertEqual(len(lots.lots_with_stock()), 2)


class TransferEngineTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_entry_credits_destination_and_records_movement(self):
        movement = transfers.register_entry(self.item.id, self.warehouse_a.id, self.lot.id, 100, "alice", "Opening")

        self.assertEqual(movement.kind, Movement.Kind.ENTRY)
        self.assertIsNone(movement.origin_warehouse_id)
        self.assertIsNone(movement.origin_lot_id)
        self.assertEqual(movement.destination_lot_id, self.lot.id)
        self.assertEqual(movement.note, "Opening")
        self.assertIsNotNone(movement.moved_at)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)

    def test_transfer_conserves_quantity(self):
        self.seed_balance(self.warehouse_a, self.lot, 100)
        before = self.total_units()

        movement = transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, 40, "alice")

        self.assertEqual(movement.kind, Movement.Kind.TRANSFER)
        self.assertEqual(movement.quantity, 40)
        self.assertEqual(movement.responsible, "alice")
        self.assertEqual(self.total_units(), before)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 60)
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 40)

    def test_transfer_over_balance_fails_without_changes(self):
        self.seed_balance(self.warehouse_a, self.lot, 100)

        with self.assertRaises(InsufficientStock) as ctx:
            transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, 150, "alice")

        self.assertIn("Available: 100", str(ctx.exception))
        self.assertIn("Requested: 150", str(ctx.exception))
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 0)
        self.assertFalse(Movement.objects.exists())

    def test_invalid_parameters(self):
        self.seed_balance(self.warehouse_a, self.lot, 10)
        for quantity, responsible in [(0, "alice"), (-5, "alice"), (None, "alice"), (3, ""), (3, "   "), (3, None)]:
            with self.subTest(quantity=quantity, responsible=responsible):
                with self.assertRaises(InvalidOperation):
                    transfers.transfer(
                        self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, quantity, responsible
                    )
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 10)

    def test_inactive_warehouses_are_rejected(self):
        self.seed_balance(self.warehouse_a, self.lot, 10)
        self.seed_balance(self.inactive_warehouse, self.lot, 10)

        with self.assertRaises(InvalidOperation):
            transfers.transfer(self.item.id, self.warehouse_a.id, self.inactive_warehouse.id, self.lot.id, self.lot.id, 1, "alice")
        with self.assertRaises(InvalidOperation):
            transfers.transfer(self.item.id, self.inactive_warehouse.id, self.warehouse_b.id, self.lot.id, self.lot.id, 1, "alice")
        with self.assertRaises(InvalidOperation):
            transfers.register_entry(self.item.id, self.inactive_warehouse.id, self.lot.id, 1, "alice")
        self.assertFalse(Movement.objects.exists())

    def test_unknown_references_raise_not_found(self):
        missing = uuid.uuid4()
        with self.assertRaises(NotFound):
            transfers.transfer(missing, None, self.warehouse_b.id, None, self.lot.id, 1, "alice")
        with self.assertRaises(NotFound):
            transfers.transfer(self.item.id, None, missing, None, self.lot.id, 1, "alice")
        with self.assertRaises(NotFound):
            transfers.transfer(self.item.id, None, self.warehouse_b.id, None, missing, 1, "alice")
        with self.assertRaises(NotFound):
            transfers.transfer(self.item.id, missing, self.warehouse_b.id, self.lot.id, self.lot.id, 1, "alice")

    def test_lot_of_another_item_is_rejected(self):
        with self.assertRaises(InvalidOperation):
            transfers.register_entry(self.item.id, self.warehouse_a.id, self.other_lot.id, 5, "alice")

    def test_partial_origin_is_treated_as_entry(self):
        movement = transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, None, self.lot.id, 5, "alice")

        self.assertEqual(movement.kind, Movement.Kind.ENTRY)
        self.assertIsNone(movement.origin_warehouse_id)
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 5)

    def test_failure_after_debit_rolls_back_everything(self):
        self.seed_balance(self.warehouse_a, self.lot, 100)

        with mock.patch("inventory.ledger.credit", side_effect=RuntimeError("storage failure")):
            with self.assertRaises(RuntimeError):
                transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, 30, "alice")

        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)
        self.assertFalse(Movement.objects.exists())

    def test_exit_debits_origin_without_destination(self):
        self.seed_balance(self.warehouse_a, self.lot, 10)

        movement = transfers.register_exit(self.item.id, self.warehouse_a.id, self.lot.id, 4, "bob", "Expired units")

        self.assertEqual(movement.kind, Movement.Kind.EXIT)
        self.assertIsNone(movement.destination_warehouse_id)
        self.assertIsNone(movement.destination_lot_id)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 6)

    def test_exit_over_balance_fails(self):
        self.seed_balance(self.warehouse_a, self.lot, 3)

        with self.assertRaises(InsufficientStock):
            transfers.register_exit(self.item.id, self.warehouse_a.id, self.lot.id, 4, "bob")
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 3)

    def test_completed_transfer_is_logged(self):
        self.seed_balance(self.warehouse_a, self.lot, 10)

        with self.assertLogs("inventory.transfers", level="INFO") as logs:
            movement = transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, 2, "alice")

        record = logs.records[0]
        self.assertEqual(record.getMessage(), "stock_transfer_completed")
        self.assertEqual(record.movement_id, movement.id)
        self.assertEqual(record.quantity, 2)


class LotTransferTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.seed_balance(self.warehouse_a, self.lot, 100)

    def test_partial_transfer_splits_lot(self):
        movement = transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 30, "alice")

        self.assertEqual(movement.quantity, 30)
        self.assertEqual(movement.origin_lot_id, self.lot.id)
        self.assertNotEqual(movement.destination_lot_id, self.lot.id)

        derived = Lot.objects.get(id=movement.destination_lot_id)
        self.assertEqual(derived.quantity, 30)
        self.assertEqual(derived.derived_from_id, self.lot.id)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 70)
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, derived.id), 30)
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 0)

    def test_full_transfer_keeps_lot_identity(self):
        movement = transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 100, "alice")

        self.assertEqual(movement.destination_lot_id, self.lot.id)
        self.assertFalse(StockLedgerEntry.objects.filter(warehouse=self.warehouse_a, lot=self.lot).exists())
        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 100)
        self.assertEqual(Lot.objects.count(), 2)

    def test_full_transfer_merges_into_existing_destination_row(self):
        self.seed_balance(self.warehouse_b, self.lot, 5)

        transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 100, "alice")

        self.assertEqual(ledger.balance(self.warehouse_b.id, self.item.id, self.lot.id), 105)
        self.assertEqual(StockLedgerEntry.objects.filter(warehouse=self.warehouse_b, lot=self.lot).count(), 1)

    def test_same_origin_and_destination_is_rejected(self):
        with self.assertRaises(InvalidOperation):
            transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_a.id, 10, "alice")

    def test_same_warehouse_in_different_id_forms_is_rejected(self):
        with self.assertRaises(InvalidOperation):
            transfers.transfer_lot(self.lot.id, self.warehouse_a.id, str(self.warehouse_a.id).upper(), 30, "alice")

        self.assertEqual(Lot.objects.count(), 2)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)
        self.assertFalse(Movement.objects.exists())

    def test_insufficient_balance_creates_no_lot(self):
        with self.assertRaises(InsufficientStock) as ctx:
            transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 101, "alice")

        self.assertEqual(ctx.exception.available, 100)
        self.assertEqual(ctx.exception.requested, 101)
        self.assertEqual(Lot.objects.count(), 2)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)

    def test_lot_absent_from_origin_is_insufficient(self):
        with self.assertRaises(InsufficientStock) as ctx:
            transfers.transfer_lot(self.lot.id, self.warehouse_b.id, self.warehouse_a.id, 1, "alice")

        self.assertEqual(ctx.exception.available, 0)

    def test_inactive_destination_is_rejected(self):
        with self.assertRaises(InvalidOperation):
            transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.inactive_warehouse.id, 10, "alice")
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)

    def test_failed_credit_rolls_back_split(self):
        with mock.patch("inventory.ledger.credit", side_effect=RuntimeError("storage failure")):
            with self.assertRaises(RuntimeError):
                transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 30, "alice")

        self.assertEqual(Lot.objects.count(), 2)
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)
        self.assertFalse(Movement.objects.exists())

    def test_available_in_lot(self):
        self.assertEqual(transfers.available_in_lot(self.warehouse_a.id, self.lot.id), 100)
        self.assertEqual(transfers.available_in_lot(self.warehouse_b.id, self.lot.id), 0)
        with self.assertRaises(NotFound):
            transfers.available_in_lot(self.warehouse_a.id, uuid.uuid4())


class MovementHistoryTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def _movement(self, **kwargs):
        defaults = {"item": self.item, "quantity": 1, "responsible": "alice"}
        defaults.update(kwargs)
        return history.append_movement(Movement(**defaults))

    def test_append_assigns_timestamp(self):
        movement = self._movement(destination_warehouse=self.warehouse_a, destination_lot=self.lot)

        self.assertIsNotNone(movement.moved_at)
        self.assertTrue(Movement.objects.filter(id=movement.id).exists())

    def test_warehouse_history_matches_origin_or_destination_newest_first(self):
        now = timezone.now()
        incoming = self._movement(destination_warehouse=self.warehouse_a, destination_lot=self.lot, moved_at=now - timedelta(hours=2))
        outgoing = self._movement(
            origin_warehouse=self.warehouse_a,
            origin_lot=self.lot,
            destination_warehouse=self.warehouse_b,
            destination_lot=self.lot,
            moved_at=now - timedelta(hours=1),
        )
        unrelated = self._movement(destination_warehouse=self.warehouse_b, destination_lot=self.lot, moved_at=now)

        self.assertEqual(list(history.movements_for_warehouse(self.warehouse_a.id)), [outgoing, incoming])
        self.assertEqual(list(history.all_movements()), [unrelated, outgoing, incoming])

    def test_recorded_movements_are_immutable(self):
        movement = self._movement(destination_warehouse=self.warehouse_a, destination_lot=self.lot)
        movement.quantity = 99

        with self.assertRaises(InvalidOperation):
            movement.save()
        self.assertEqual(Movement.objects.get(id=movement.id).quantity, 1)


class MovementApiTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_fixtures()
        self.seed_balance(self.warehouse_a, self.lot, 100)

    def test_transfer_lot_endpoint_splits(self):
        response = self.client.post(
            "/api/v1/movements/transfer-lot/",
            {
                "source_lot_id": str(self.lot.id),
                "origin_warehouse_id": str(self.warehouse_a.id),
                "destination_warehouse_id": str(self.warehouse_b.id),
                "quantity": 30,
                "responsible": "alice",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["kind"], "transfer")
        self.assertEqual(payload["quantity"], 30)
        self.assertEqual(payload["origin_lot"], str(self.lot.id))
        self.assertNotEqual(payload["destination_lot"], str(self.lot.id))
        self.assertEqual(payload["destination_warehouse_name"], "Warehouse B")

    def test_insufficient_stock_maps_to_conflict(self):
        response = self.client.post(
            "/api/v1/movements/transfer/",
            {
                "item_id": str(self.item.id),
                "origin_warehouse_id": str(self.warehouse_a.id),
                "destination_warehouse_id": str(self.warehouse_b.id),
                "origin_lot_id": str(self.lot.id),
                "destination_lot_id": str(self.lot.id),
                "quantity": 150,
                "responsible": "alice",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload["code"], "insufficient_stock")
        self.assertEqual(payload["errors"], {"available": 100, "requested": 150})
        self.assertEqual(ledger.balance(self.warehouse_a.id, self.item.id, self.lot.id), 100)

    def test_inactive_warehouse_maps_to_bad_request(self):
        response = self.client.post(
            "/api/v1/movements/entry/",
            {
                "item_id": str(self.item.id),
                "destination_warehouse_id": str(self.inactive_warehouse.id),
                "destination_lot_id": str(self.lot.id),
                "quantity": 5,
                "responsible": "alice",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_operation")

    def test_blank_responsible_maps_to_bad_request(self):
        response = self.client.post(
            "/api/v1/movements/exit/",
            {
                "item_id": str(self.item.id),
                "origin_warehouse_id": str(self.warehouse_a.id),
                "origin_lot_id": str(self.lot.id),
                "quantity": 5,
                "responsible": " ",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_operation")

    def test_unknown_item_maps_to_not_found(self):
        response = self.client.post(
            "/api/v1/movements/entry/",
            {
                "item_id": str(uuid.uuid4()),
                "destination_warehouse_id": str(self.warehouse_a.id),
                "destination_lot_id": str(self.lot.id),
                "quantity": 5,
                "responsible": "alice",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_malformed_body_is_a_validation_error(self):
        response = self.client.post(
            "/api/v1/movements/exit/",
            {"item_id": "not-a-uuid", "quantity": 5},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("item_id", payload["errors"])
        self.assertIn("origin_warehouse_id", payload["errors"])

    def test_history_is_paginated_and_filtered(self):
        transfers.transfer_lot(self.lot.id, self.warehouse_a.id, self.warehouse_b.id, 10, "alice")
        transfers.register_entry(self.other_item.id, self.warehouse_b.id, self.other_lot.id, 4, "bob")

        response = self.client.get(f"/api/v1/movements/?warehouse_id={self.warehouse_a.id}")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual(payload["count"], 1)

        self.assertEqual(self.client.get("/api/v1/movements/").json()["count"], 2)

    def test_movement_posts_are_not_rate_limited(self):
        cache.clear()
        self.addCleanup(cache.clear)
        payload = {
            "item_id": str(self.item.id),
            "destination_warehouse_id": str(self.warehouse_b.id),
            "destination_lot_id": str(self.lot.id),
            "quantity": 1,
            "responsible": "alice",
        }

        with mock.patch.object(AnonRateThrottle, "THROTTLE_RATES", {"anon": "1/min"}):
            posts = [self.client.post("/api/v1/movements/entry/", payload, format="json") for _ in range(3)]
            first_read = self.client.get("/api/v1/movements/")
            second_read = self.client.get("/api/v1/movements/")

        self.assertEqual([response.status_code for response in posts], [201, 201, 201])
        self.assertEqual(first_read.status_code, 200)
        self.assertEqual(second_read.status_code, 429)
        self.assertEqual(second_read.json()["code"], "throttled")

    def test_bad_uuid_query_param_is_rejected(self):
        response = self.client.get("/api/v1/movements/?warehouse_id=abc")

        self.assertEqual(response.status_code, 400)
        self.assertIn("warehouse_id", response.json()["errors"])


class StockApiTests(InventoryFixturesMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_fixtures()
        self.seed_balance(self.warehouse_a, self.lot, 100)

    def test_balances_listing(self):
        response = self.client.get(f"/api/v1/stock/?warehouse_id={self.warehouse_a.id}")

        self.assertEqual(response.status_code, 200)
        rows = response.json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["quantity"], 100)
        self.assertEqual(rows[0]["lot_name"], "L1")

    def test_availability_endpoint(self):
        response = self.client.get(
            "/api/v1/stock/availability/",
            {
                "warehouse_id": str(self.warehouse_a.id),
                "item_id": str(self.item.id),
                "lot_id": str(self.lot.id),
                "quantity": 150,
            },
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertFalse(payload["available"])
        self.assertEqual(payload["available_quantity"], 100)
        self.assertEqual(payload["requested_quantity"], 150)

    def test_availability_requires_parameters(self):
        response = self.client.get("/api/v1/stock/availability/", {"warehouse_id": str(self.warehouse_a.id)})

        self.assertEqual(response.status_code, 400)

    def test_lot_quantity_endpoint(self):
        response = self.client.get(
            "/api/v1/stock/lot-quantity/",
            {"warehouse_id": str(self.warehouse_a.id), "lot_id": str(self.lot.id)},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["available_quantity"], 100)

    def test_available_lots_endpoint(self):
        response = self.client.get("/api/v1/lots/available/", {"warehouse_id": str(self.warehouse_a.id)})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]["lot_id"], str(self.lot.id))

    def test_expired_lots_endpoint(self):
        expired = Lot.objects.create(item=self.item, name="OLD", expires_on=timezone.localdate() - timedelta(days=1))

        response = self.client.get("/api/v1/lots/expired/")

        self.assertEqual(response.status_code, 200)
        self.assertIn(str(expired.id), [row["id"] for row in response.json()])

    def test_item_total_stock_endpoint(self):
        self.seed_balance(self.warehouse_b, self.lot, 25)

        response = self.client.get(f"/api/v1/items/{self.item.id}/total-stock/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"item_id": str(self.item.id), "total_quantity": 125})

    def test_item_total_stock_for_unknown_item(self):
        missing = self.client.get(f"/api/v1/items/{uuid.uuid4()}/total-stock/")
        malformed = self.client.get("/api/v1/items/not-a-uuid/total-stock/")

        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "not_found")
        self.assertEqual(malformed.status_code, 404)

    def test_near_expiry_endpoint_accepts_horizon(self):
        soon = Lot.objects.create(item=self.item, name="SOON", expires_on=timezone.localdate() + timedelta(days=3))

        wide = self.client.get("/api/v1/lots/near-expiry/", {"days": 7})
        narrow = self.client.get("/api/v1/lots/near-expiry/", {"days": 1})
        negative = self.client.get("/api/v1/lots/near-expiry/", {"days": -1})

        self.assertIn(str(soon.id), [row["id"] for row in wide.json()])
        self.assertNotIn(str(soon.id), [row["id"] for row in narrow.json()])
        self.assertEqual(negative.status_code, 400)

    def test_low_stock_endpoint(self):
        StockLedgerEntry.objects.create(warehouse=self.warehouse_b, item=self.item, lot=self.lot, quantity=1, minimum_quantity=10)

        response = self.client.get("/api/v1/stock/low/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["warehouse_name"] for row in response.json()], ["Warehouse B"])


class BalanceCacheTests(InventoryFixturesMixin, TransactionTestCase):
    def setUp(self):
        cache.clear()
        self.create_fixtures()

    def test_listing_is_cached_until_the_ledger_changes(self):
        self.assertEqual(ledger.list_balances(warehouse_id=self.warehouse_a.id), [])

        # Rows written behind the ledger's back are not visible through the cache.
        self.seed_balance(self.warehouse_a, self.other_lot, 7)
        self.assertEqual(ledger.list_balances(warehouse_id=self.warehouse_a.id), [])

        transfers.register_entry(self.item.id, self.warehouse_a.id, self.lot.id, 10, "alice")

        rows = ledger.list_balances(warehouse_id=self.warehouse_a.id)
        self.assertEqual(sorted(row.quantity for row in rows), [7, 10])

    @override_settings(INVENTORY_BALANCE_CACHE_ENABLED=False)
    def test_listing_reads_through_when_cache_disabled(self):
        self.assertEqual(ledger.list_balances(warehouse_id=self.warehouse_a.id), [])

        self.seed_balance(self.warehouse_a, self.other_lot, 7)

        rows = ledger.list_balances(warehouse_id=self.warehouse_a.id)
        self.assertEqual([row.quantity for row in rows], [7])

    def test_failed_transfer_leaves_cached_listing_valid(self):
        self.seed_balance(self.warehouse_a, self.lot, 5)
        self.assertEqual(len(ledger.list_balances()), 1)

        with self.assertRaises(InsufficientStock):
            transfers.transfer(self.item.id, self.warehouse_a.id, self.warehouse_b.id, self.lot.id, self.lot.id, 6, "alice")

        rows = ledger.list_balances()
        self.assertEqual([(row.warehouse_id, row.quantity) for row in rows], [(self.warehouse_a.id, 5)])


class BalanceCacheSettingsTests(SimpleTestCase):
    def test_process_local_cache_is_only_used_in_dev(self):
        locmem = "django.core.cache.backends.locmem.LocMemCache"

        self.assertTrue(balance_cache_enabled("dev", locmem))
        self.assertFalse(balance_cache_enabled("staging", locmem))
        self.assertFalse(balance_cache_enabled("prod", "django.core.cache.backends.dummy.DummyCache"))

    def test_shared_cache_follows_request(self):
        shared = "django.core.cache.backends.db.DatabaseCache"

        self.assertTrue(balance_cache_enabled("prod", shared))
        self.assertFalse(balance_cache_enabled("prod", shared, requested=False))
        self.assertFalse(balance_cache_enabled("dev", shared, requested=False))


class SeedDemoDataCommandTests(InventoryFixturesMixin, TestCase):
    def test_seed_requires_responsible(self):
        with self.assertRaises(CommandError):
            call_command("seed_demo_data", responsible="   ")

    def test_seed_records_opening_stock_once(self):
        call_command("seed_demo_data", responsible="ops-team")
        call_command("seed_demo_data", responsible="ops-team")

        central = Warehouse.objects.get(name="Central Warehouse")
        self.assertEqual(Movement.objects.count(), 3)
        self.assertTrue(all(movement.responsible == "ops-team" for movement in Movement.objects.all()))
        self.assertEqual(sum(entry.quantity for entry in ledger.list_balances(warehouse_id=central.id)), 188)
        self.assertFalse(Warehouse.objects.get(name="Old Annex").is_active)

    def test_reseed_after_stock_moved_away_records_nothing(self):
        call_command("seed_demo_data", responsible="ops-team")
        central = Warehouse.objects.get(name="Central Warehouse")
        pharmacy = Warehouse.objects.get(name="Pharmacy")
        gloves_lot = Lot.objects.get(name="GLV-2024-01")
        transfers.transfer_lot(gloves_lot.id, central.id, pharmacy.id, 120, "ops-team")

        call_command("seed_demo_data", responsible="ops-team")

        self.assertEqual(Movement.objects.count(), 4)
        self.assertEqual(self.total_units(), 188)
        self.assertEqual(ledger.balance(central.id, gloves_lot.item_id, gloves_lot.id), 0)
        self.assertEqual(ledger.balance(pharmacy.id, gloves_lot.item_id, gloves_lot.id), 120)
