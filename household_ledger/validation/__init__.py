"""Validation package."""

from household_ledger.validation.validator import (
    BadRequestError,
    RequestValidator,
    ensure_valid,
)

__all__ = [
    "BadRequestError",
    "RequestValidator",
    "ensure_valid",
]
