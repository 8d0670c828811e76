from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from inventory.exceptions import NotFound
from inventory.models import Lot, StockLedgerEntry

SPLIT_SUFFIX = " (Split)"


def _horizon(horizon_days):
    if horizon_days is None:
        return settings.INVENTORY_NEAR_EXPIRY_DAYS
    return horizon_days


def get_lot(lot_id):
    try:
        return Lot.objects.select_related("item").get(id=lot_id)
    except Lot.DoesNotExist:
        raise NotFound("Lot", lot_id)


def split_lot(source_lot, quantity):
    """
    Persist a lot derived from `source_lot` that carries `quantity` units.

    The derived lot keeps the item, purchase order reference and dates of its
    source. Ledger balances are left untouched.
    """
    name = f"{source_lot.name}{SPLIT_SUFFIX}"
    return Lot.objects.create(
        item_id=source_lot.item_id,
        purchase_order_ref=source_lot.purchase_order_ref,
        name=name[: Lot._meta.get_field("name").max_length],
        quantity=quantity,
        manufactured_on=source_lot.manufactured_on,
        expires_on=source_lot.expires_on,
        note=f"Derived from lot {source_lot.id}",
        derived_from=source_lot,
    )


def is_expired(lot, today=None):
    if lot.expires_on is None:
        return False
    today = today or timezone.localdate()
    return today > lot.expires_on


def is_near_expiry(lot, horizon_days=None, today=None):
    if lot.expires_on is None:
        return False
    today = today or timezone.localdate()
    return today + timedelta(days=_horizon(horizon_days)) > lot.expires_on


def expired_lots(today=None):
    today = today or timezone.localdate()
    return Lot.objects.select_related("item").filter(expires_on__lt=today).order_by("expires_on")


def near_expiry_lots(horizon_days=None, today=None):
    today = today or timezone.localdate()
    limit = today + timedelta(days=_horizon(horizon_days))
    return Lot.objects.select_related("item").filter(expires_on__gte=today, expires_on__lt=limit).order_by("expires_on")


def lots_with_stock(warehouse_id=None, today=None):
    entries = StockLedgerEntry.objects.select_related("warehouse", "item", "lot").filter(quantity__gt=0, is_active=True)
    if warehouse_id:
        entries = entries.filter(warehouse_id=warehouse_id)

    rows = []
    for entry in entries.order_by("lot__expires_on", "lot__name"):
        lot = entry.lot
        rows.append(
            {
                "lot_id": lot.id,
                "lot_name": lot.name,
                "item_id": entry.item_id,
                "item_name": entry.item.name,
                "expires_on": lot.expires_on,
                "available_quantity": entry.quantity,
                "warehouse_id": entry.warehouse_id,
                "warehouse_name": entry.warehouse.name,
                "expired": is_expired(lot, today=today),
                "near_expiry": is_near_expiry(lot, today=today),
            }
        )
    return rows
