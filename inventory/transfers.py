"""
Stock transfer engine.

Every public operation runs as one atomic unit: validation, entity lookup,
ledger debit/credit and the movement record either all happen or none do.
Ledger rows are locked with SELECT ... FOR UPDATE, so concurrent calls on the
same (warehouse, item, lot) serialize on the row.
"""
import logging

from django.db import transaction

from inventory import ledger
from inventory.exceptions import InsufficientStock, InvalidOperation, NotFound
from inventory.history import append_movement
from inventory.lots import get_lot, split_lot
from inventory.models import Item, Movement, Warehouse

logger = logging.getLogger(__name__)


def _validate_parameters(quantity, responsible):
    if quantity is None or quantity <= 0:
        raise InvalidOperation("Quantity must be greater than zero.")
    if responsible is None or not str(responsible).strip():
        raise InvalidOperation("Responsible party is required.")


def _get_item(item_id):
    try:
        return Item.objects.get(id=item_id)
    except Item.DoesNotExist:
        raise NotFound("Item", item_id)


def _get_warehouse(warehouse_id):
    try:
        return Warehouse.objects.get(id=warehouse_id)
    except Warehouse.DoesNotExist:
        raise NotFound("Warehouse", warehouse_id)


def _ensure_active(warehouse):
    if not warehouse.is_active:
        raise InvalidOperation(f"Warehouse '{warehouse.name}' is inactive.")


def _ensure_lot_of_item(lot, item):
    if lot.item_id != item.id:
        raise InvalidOperation(f"Lot '{lot.name}' does not belong to item '{item.name}'.")


def _record_movement(*, item, quantity, responsible, note, origin_warehouse=None, destination_warehouse=None, origin_lot=None, destination_lot=None):
    return append_movement(
        Movement(
            origin_warehouse=origin_warehouse,
            destination_warehouse=destination_warehouse,
            item=item,
            origin_lot=origin_lot,
            destination_lot=destination_lot,
            quantity=quantity,
            responsible=str(responsible).strip(),
            note=note or "",
        )
    )


def _log_extra(movement):
    return {
        "movement_id": movement.id,
        "item_id": movement.item_id,
        "origin_warehouse_id": movement.origin_warehouse_id,
        "destination_warehouse_id": movement.destination_warehouse_id,
        "origin_lot_id": movement.origin_lot_id,
        "destination_lot_id": movement.destination_lot_id,
        "quantity": movement.quantity,
    }


@transaction.atomic
def transfer(
    item_id,
    origin_warehouse_id,
    destination_warehouse_id,
    origin_lot_id,
    destination_lot_id,
    quantity,
    responsible,
    note=None,
):
    """
    Move `quantity` units of an item between (warehouse, lot) pairs.

    When either origin id is missing the call is an entry: nothing is debited
    and the movement has no origin.
    """
    _validate_parameters(quantity, responsible)

    item = _get_item(item_id)
    destination_warehouse = _get_warehouse(destination_warehouse_id)
    destination_lot = get_lot(destination_lot_id)
    _ensure_lot_of_item(destination_lot, item)

    origin_warehouse = None
    origin_lot = None
    if origin_warehouse_id is not None and origin_lot_id is not None:
        origin_warehouse = _get_warehouse(origin_warehouse_id)
        origin_lot = get_lot(origin_lot_id)
        _ensure_lot_of_item(origin_lot, item)
        _ensure_active(origin_warehouse)
    _ensure_active(destination_warehouse)

    if origin_warehouse is not None:
        ledger.debit(origin_warehouse.id, item.id, origin_lot.id, quantity)
    ledger.credit(destination_warehouse.id, item.id, destination_lot.id, quantity)

    movement = _record_movement(
        item=item,
        quantity=quantity,
        responsible=responsible,
        note=note,
        origin_warehouse=origin_warehouse,
        destination_warehouse=destination_warehouse,
        origin_lot=origin_lot,
        destination_lot=destination_lot,
    )
    logger.info("stock_transfer_completed", extra=_log_extra(movement))
    return movement


def register_entry(item_id, destination_warehouse_id, destination_lot_id, quantity, responsible, note=None):
    return transfer(
        item_id,
        None,
        destination_warehouse_id,
        None,
        destination_lot_id,
        quantity,
        responsible,
        note,
    )


@transaction.atomic
def register_exit(item_id, origin_warehouse_id, origin_lot_id, quantity, responsible, note=None):
    """Take stock out of the system (consumption, loss); the movement has no destination."""
    _validate_parameters(quantity, responsible)

    item = _get_item(item_id)
    origin_warehouse = _get_warehouse(origin_warehouse_id)
    origin_lot = get_lot(origin_lot_id)
    _ensure_lot_of_item(origin_lot, item)
    _ensure_active(origin_warehouse)

    ledger.debit(origin_warehouse.id, item.id, origin_lot.id, quantity)

    movement = _record_movement(
        item=item,
        quantity=quantity,
        responsible=responsible,
        note=note,
        origin_warehouse=origin_warehouse,
        origin_lot=origin_lot,
    )
    logger.info("stock_exit_completed", extra=_log_extra(movement))
    return movement


@transaction.atomic
def transfer_lot(source_lot_id, origin_warehouse_id, destination_warehouse_id, quantity, responsible, note=None):
    """
    Move stock of one lot to another warehouse, splitting the lot when only
    part of its balance moves.

    A full transfer relabels the whole balance under the destination with the
    same lot id. A partial transfer mints a derived lot for the moved units so
    the remaining stock keeps its own identity.
    """
    _validate_parameters(quantity, responsible)

    source_lot = get_lot(source_lot_id)
    origin_warehouse = _get_warehouse(origin_warehouse_id)
    destination_warehouse = _get_warehouse(destination_warehouse_id)
    if origin_warehouse.id == destination_warehouse.id:
        raise InvalidOperation("Origin and destination warehouses must differ.")
    item = source_lot.item

    _ensure_active(origin_warehouse)
    _ensure_active(destination_warehouse)

    origin_entry = ledger.get_entry_for_update(origin_warehouse.id, item.id, source_lot.id)
    available = origin_entry.quantity if origin_entry else 0
    if available < quantity:
        raise InsufficientStock(
            available,
            quantity,
            warehouse_name=origin_warehouse.name,
            item_name=item.name,
            lot_name=source_lot.name,
        )

    is_full_transfer = available == quantity
    if is_full_transfer:
        destination_lot = source_lot
    else:
        destination_lot = split_lot(source_lot, quantity)
        logger.debug("Partial transfer of lot %s, split into %s", source_lot.id, destination_lot.id)

    ledger.debit(origin_warehouse.id, item.id, source_lot.id, quantity)
    ledger.credit(destination_warehouse.id, item.id, destination_lot.id, quantity)

    movement = _record_movement(
        item=item,
        quantity=quantity,
        responsible=responsible,
        note=note,
        origin_warehouse=origin_warehouse,
        destination_warehouse=destination_warehouse,
        origin_lot=source_lot,
        destination_lot=destination_lot,
    )
    logger.info("stock_lot_transfer_completed", extra={**_log_extra(movement), "split": not is_full_transfer})
    return movement


def available_in_lot(warehouse_id, lot_id):
    lot = get_lot(lot_id)
    return ledger.balance(warehouse_id, lot.item_id, lot.id)
