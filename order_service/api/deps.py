# order_service/api/deps.py
from typing import Optional

from fastapi import Depends, Query
from fastapi.exceptions import RequestValidationError

from order_service.database import FileBackedDB, db
from order_service.models.order import OrderStatus
from order_service.services.orders import OrderService


def get_db() -> FileBackedDB:
    """
    Dependency that returns the file-backed DB object.
    Usage:
        db = Depends(get_db)
    """
    return db


def get_order_service(database: FileBackedDB = Depends(get_db)) -> OrderService:
    """
    OrderService bound to the request's DB. The service is stateless, so a fresh
    instance per request is cheap and safe.
    """
    return OrderService(database)


def _status_from_query(raw: Optional[str]) -> Optional[OrderStatus]:
    if raw is None or raw.strip() == "":
        return None
    try:
        return OrderStatus.parse(raw)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise RequestValidationError([{
            "type": "enum",
            "loc": ("query", "status"),
            "msg": f"Input should be one of: {allowed}",
            "input": raw,
        }])


def status_filter(
    status: Optional[str] = Query(None, description="Only orders with this status (case-insensitive)"),
) -> Optional[OrderStatus]:
    """Optional `?status=` filter, matched case-insensitively like the service does."""
    return _status_from_query(status)


def target_status(status: str = Query(..., description="Target status (case-insensitive)")) -> OrderStatus:
    parsed = _status_from_query(status)
    if parsed is None:
        raise RequestValidationError([{
            "type": "missing",
            "loc": ("query", "status"),
            "msg": "Field required",
            "input": status,
        }])
    return parsed
