from typing import Any

from fastapi import HTTPException


def _auth_401(code: str, message: str) -> HTTPException:
    # keep WWW-Authenticate for Bearer clients
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


class LogisticsError(Exception):
    """Base for every recoverable failure raised by the core.

    Subclasses carry a stable ``code``, the HTTP status the API maps it to,
    and structured fields that end up next to ``code``/``message`` in the
    response body.
    """

    code = "LOGISTICS_ERROR"
    status_code = 400

    def __init__(self, message: str, **fields: Any):
        super().__init__(message)
        self.message = message
        self.fields = fields

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.fields}


class Forbidden(LogisticsError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, action: str, role: str, allowed_roles: list[str]):
        allowed = " or ".join(allowed_roles) if allowed_roles else "no"
        super().__init__(
            f"Access denied. {action} is only allowed for {allowed} roles.",
            role=role,
            allowed_roles=allowed_roles,
        )


class InvalidTransition(LogisticsError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, entity_type: str, current: str, requested: str):
        super().__init__(
            f"Cannot move {entity_type} from '{current}' to '{requested}'",
            entity_type=entity_type,
            current=current,
            requested=requested,
        )


class ItemNotFound(LogisticsError):
    code = "ITEM_NOT_FOUND"
    status_code = 404

    def __init__(self, item_name: str):
        super().__init__(f"Stock item not found: {item_name}", item_name=item_name)


class InsufficientStock(LogisticsError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {item_name}: available {available}, requested {requested}",
            item_name=item_name,
            available=available,
            requested=requested,
        )


class ValidationError(LogisticsError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)


class NotFound(LogisticsError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class DuplicateItem(LogisticsError):
    code = "ITEM_EXISTS"
    status_code = 409

    def __init__(self, item_name: str):
        super().__init__(f"Stock item already exists: {item_name}", item_name=item_name)


class StockInconsistency(LogisticsError):
    """A storage failure happened after stock had been deducted.

    The surrounding transaction is rolled back before this is raised; it
    still needs an operator to confirm the ledger, so it is not treated as
    a user error.
    """

    code = "STOCK_INCONSISTENCY"
    status_code = 500

    def __init__(self, operation: str, item_name: str):
        super().__init__(
            f"{operation} failed after stock deduction for {item_name}; manual reconciliation required",
            operation=operation,
            item_name=item_name,
        )


class DuplicateCategory(LogisticsError):
    code = "CATEGORY_EXISTS"
    status_code = 409

    def __init__(self, name: str):
        super().__init__(f"Category name already exists: {name}", category=name)


class CategoryInUse(LogisticsError):
    code = "CATEGORY_IN_USE"
    status_code = 409

    def __init__(self, name: str, stock_items: int):
        super().__init__(
            f"Cannot delete category {name}: in use by {stock_items} stock item(s)",
            category=name,
            stock_items=stock_items,
        )
