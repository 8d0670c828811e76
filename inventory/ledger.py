import logging
import uuid

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import F, Sum

from inventory.exceptions import InsufficientStock, InvalidOperation, NotFound
from inventory.models import Item, StockLedgerEntry

logger = logging.getLogger(__name__)

BALANCE_CACHE_VERSION_KEY = "inventory:ledger:version"


def _require_positive(quantity):
    if quantity is None or quantity <= 0:
        raise InvalidOperation("Quantity must be greater than zero.")


def _balance_cache_version():
    version = cache.get(BALANCE_CACHE_VERSION_KEY)
    if version is None:
        cache.add(BALANCE_CACHE_VERSION_KEY, uuid.uuid4().hex, None)
        version = cache.get(BALANCE_CACHE_VERSION_KEY)
    return version


def invalidate_balance_cache():
    cache.set(BALANCE_CACHE_VERSION_KEY, uuid.uuid4().hex, None)


def _ledger_changed():
    # Readers outside the transaction may have cached pre-commit rows in the
    # meantime, so the version is bumped again once the write is visible.
    invalidate_balance_cache()
    transaction.on_commit(invalidate_balance_cache)


def get_entry_for_update(warehouse_id, item_id, lot_id):
    return (
        StockLedgerEntry.objects.select_for_update()
        .filter(warehouse_id=warehouse_id, item_id=item_id, lot_id=lot_id)
        .first()
    )


def balance(warehouse_id, item_id, lot_id):
    quantity = (
        StockLedgerEntry.objects.filter(warehouse_id=warehouse_id, item_id=item_id, lot_id=lot_id)
        .values_list("quantity", flat=True)
        .first()
    )
    return quantity or 0


@transaction.atomic
def debit(warehouse_id, item_id, lot_id, quantity):
    """
    Remove `quantity` units from a ledger row.

    Returns the updated entry, or None when the balance reached zero and the
    row was deleted. Raises InsufficientStock when the row is missing or
    short; nothing is written in that case.
    """
    _require_positive(quantity)

    entry = get_entry_for_update(warehouse_id, item_id, lot_id)
    available = entry.quantity if entry else 0
    if available < quantity:
        raise InsufficientStock(available, quantity)

    entry.quantity -= quantity
    if entry.quantity == 0:
        entry.delete()
        entry = None
        logger.debug("Ledger row emptied and removed warehouse=%s item=%s lot=%s", warehouse_id, item_id, lot_id)
    else:
        entry.save(update_fields=["quantity", "updated_at"])
        logger.debug("Debited %s units, balance now %s", quantity, entry.quantity)

    _ledger_changed()
    return entry


def _catalog_thresholds(item_id):
    thresholds = Item.objects.filter(id=item_id).values_list("minimum_quantity", "maximum_quantity").first()
    minimum, maximum = thresholds or (None, None)
    if minimum is None:
        minimum = settings.INVENTORY_DEFAULT_MINIMUM_QUANTITY
    if maximum is None:
        maximum = settings.INVENTORY_DEFAULT_MAXIMUM_QUANTITY
    return minimum, maximum


@transaction.atomic
def credit(warehouse_id, item_id, lot_id, quantity):
    """Add `quantity` units to a ledger row, creating the row on first credit."""
    _require_positive(quantity)

    entry = get_entry_for_update(warehouse_id, item_id, lot_id)
    if entry is None:
        minimum, maximum = _catalog_thresholds(item_id)
        try:
            with transaction.atomic():
                entry = StockLedgerEntry.objects.create(
                    warehouse_id=warehouse_id,
                    item_id=item_id,
                    lot_id=lot_id,
                    quantity=quantity,
                    minimum_quantity=minimum,
                    maximum_quantity=maximum,
                )
        except IntegrityError:
            # Lost an insert race on the unique triple; fold into the winner's row.
            entry = get_entry_for_update(warehouse_id, item_id, lot_id)
            if entry is None:
                raise
        else:
            logger.debug("Created ledger row with %s units", quantity)
            _ledger_changed()
            return entry

    entry.quantity += quantity
    entry.save(update_fields=["quantity", "updated_at"])
    logger.debug("Credited %s units, balance now %s", quantity, entry.quantity)
    _ledger_changed()
    return entry


def total_for_item(item_id):
    """Units of an item held across every warehouse and lot, counting active rows only."""
    if not Item.objects.filter(id=item_id).exists():
        raise NotFound("Item", item_id)
    total = StockLedgerEntry.objects.filter(item_id=item_id, is_active=True).aggregate(total=Sum("quantity"))["total"]
    return total or 0


def is_available(warehouse_id, item_id, lot_id, quantity):
    if None in (warehouse_id, item_id, lot_id, quantity) or quantity <= 0:
        return False
    return balance(warehouse_id, item_id, lot_id) >= quantity


def check_availability(warehouse_id, item_id, lot_id, quantity):
    available_quantity = balance(warehouse_id, item_id, lot_id)
    available = is_available(warehouse_id, item_id, lot_id, quantity)

    message = None
    if available_quantity == 0:
        message = "Item not stocked in this warehouse and lot."
    elif not available:
        message = f"Insufficient stock. Available: {available_quantity}, Requested: {quantity}"

    return {
        "available": available,
        "available_quantity": available_quantity,
        "requested_quantity": quantity,
        "message": message,
    }


def _balances_queryset(warehouse_id=None, item_id=None):
    qs = StockLedgerEntry.objects.select_related("warehouse", "item", "lot")
    if warehouse_id:
        qs = qs.filter(warehouse_id=warehouse_id)
    if item_id:
        qs = qs.filter(item_id=item_id)
    return qs.order_by("warehouse__name", "item__name", "lot__name")


def list_balances(warehouse_id=None, item_id=None):
    # Inside a transaction the rows may include uncommitted writes; never cache those.
    if not settings.INVENTORY_BALANCE_CACHE_ENABLED or transaction.get_connection().in_atomic_block:
        return list(_balances_queryset(warehouse_id, item_id))

    cache_key = f"inventory:ledger:balances:{_balance_cache_version()}:{warehouse_id or '*'}:{item_id or '*'}"
    rows = cache.get(cache_key)
    if rows is None:
        rows = list(_balances_queryset(warehouse_id, item_id))
        cache.set(cache_key, rows, settings.INVENTORY_BALANCE_CACHE_TIMEOUT)
    return rows


def low_stock_entries(warehouse_id=None):
    qs = _balances_queryset(warehouse_id).filter(
        is_active=True,
        minimum_quantity__isnull=False,
        quantity__lt=F("minimum_quantity"),
    )
    return list(qs)
