# Overview: Error taxonomy shared by services and the HTTP layer.

"""
Inventory error taxonomy.

Services raise these; the HTTP layer renders them in the response envelope
using ``status_code``. Nothing below the HTTP layer catches ``Fatal``.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base for every error the core surfaces to callers."""

    status_code = 500
    kind = "Fatal"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(InventoryError):
    """400-level input problem tied to one field."""

    status_code = 400
    kind = "ValidationFailed"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}", {"field": field, "reason": reason})
        self.field = field
        self.reason = reason


class NotFound(InventoryError):
    status_code = 404
    kind = "NotFound"

    def __init__(self, which: str, id_):
        super().__init__(f"{which} {id_} not found", {"which": which, "id": id_})
        self.which = which
        self.id = id_


class Conflict(InventoryError):
    """409-level uniqueness or state conflict."""

    status_code = 409
    kind = "Conflict"


class InsufficientStock(InventoryError):
    status_code = 409
    kind = "InsufficientStock"

    def __init__(self, *, have: int, want: int, product_id: int | None = None, warehouse_id: int | None = None):
        super().__init__(
            f"Insufficient stock: have {have}, want {want}",
            {"have": have, "want": want, "product_id": product_id, "warehouse_id": warehouse_id},
        )
        self.have = have
        self.want = want
        self.product_id = product_id
        self.warehouse_id = warehouse_id


class InvalidMovement(InventoryError):
    """Movement delta sign disagrees with its kind (programming error upstream)."""

    status_code = 400
    kind = "InvalidMovement"


class Unauthorized(InventoryError):
    status_code = 401
    kind = "Unauthorized"


class Forbidden(InventoryError):
    status_code = 403
    kind = "Forbidden"


class Transient(InventoryError):
    """Retryable I/O failure or deadline exceeded."""

    status_code = 500
    kind = "Transient"


class Fatal(InventoryError):
    status_code = 500
    kind = "Fatal"


# Store-level constraint violations. Services translate these into the
# caller-facing kinds above.

class StoreViolation(InventoryError):
    status_code = 409

    def __init__(self, constraint: str | None, message: str | None = None):
        super().__init__(message or f"{self.kind} on {constraint or 'unknown constraint'}", {"constraint": constraint})
        self.constraint = constraint


class UniqueViolation(StoreViolation):
    kind = "UniqueViolation"


class ForeignKeyViolation(StoreViolation):
    kind = "ForeignKeyViolation"


class CheckViolation(StoreViolation):
    status_code = 400
    kind = "CheckViolation"
