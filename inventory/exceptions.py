from rest_framework import status

from common.exceptions import DomainError


class NotFound(DomainError):
    """A referenced item, warehouse or lot does not exist."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity, entity_id):
        super().__init__(f"{entity} {entity_id} not found.", entity=entity, entity_id=str(entity_id))


class InvalidOperation(DomainError):
    """A business rule unrelated to quantity was violated."""

    code = "invalid_operation"
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStock(DomainError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, available, requested, *, warehouse_name=None, item_name=None, lot_name=None):
        location = ""
        if warehouse_name:
            location = f" in warehouse '{warehouse_name}'"
        if item_name:
            location += f" for item '{item_name}'"
        if lot_name:
            location += f" (lot {lot_name})"
        super().__init__(
            f"Insufficient stock{location}. Available: {available}, Requested: {requested}",
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested
