from django.db.models import Q
from django.utils import timezone

from inventory.models import Movement

MOVEMENT_RELATIONS = ("origin_warehouse", "destination_warehouse", "item", "origin_lot", "destination_lot")


def append_movement(movement):
    if movement.moved_at is None:
        movement.moved_at = timezone.now()
    movement.save()
    return movement


def all_movements():
    return Movement.objects.select_related(*MOVEMENT_RELATIONS).order_by("-moved_at", "-created_at")


def movements_for_warehouse(warehouse_id):
    return all_movements().filter(Q(origin_warehouse_id=warehouse_id) | Q(destination_warehouse_id=warehouse_id))
