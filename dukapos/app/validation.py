from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BeforeValidator, Field, StringConstraints


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _strip_str(v):
    if v is None:
        return v
    return str(v).strip()


# Canonical codes mirror the Postgres enums in `dukapos/db/migrations/001_init.sql`.
AppRole = Annotated[Literal["admin", "manager", "cashier"], BeforeValidator(_to_lower_str)]
PaymentMethod = Annotated[Literal["mpesa", "cash", "card"], BeforeValidator(_to_lower_str)]
SaleStatus = Annotated[Literal["completed", "voided", "pending"], BeforeValidator(_to_lower_str)]

Email = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$"),
]
Name = Annotated[str, BeforeValidator(_strip_str), StringConstraints(min_length=1, max_length=200)]

Money = Annotated[Decimal, Field(ge=0, max_digits=10, decimal_places=2)]
VatRate = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]
