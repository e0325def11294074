"""
Platform client contract.

Shared input checks for storefront adapters: product ids must be positive
integers, prices finite non-negative decimals that fit two-decimal
formatting. Both checks run before any request is made.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Union

from ..errors import NotAuthenticatedError, ValidationError
from ..models import ListingRecord, Platform
from .http import ApiClient

PriceLike = Union[Decimal, float, int, str]

_CENTS = Decimal("0.01")


def validate_id(value: Any, label: str) -> int:
    """Return `value` if it is a positive int (bools rejected)."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {label}: {value!r}")
    return value


def validate_price(price: PriceLike) -> Decimal:
    """Parse `price` into a Decimal.

    Raises:
        ValidationError: for bools, non-numeric or non-finite values,
            negatives, and magnitudes too large to format to cents
    """
    if isinstance(price, bool):
        raise ValidationError(f"Invalid price value: {price!r}")
    if isinstance(price, float) and not math.isfinite(price):
        raise ValidationError(f"Invalid price value: {price!r}")
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid price value: {price!r}") from None
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Invalid price value: {price!r}")
    format_price(value)
    return value


def format_price(price: Decimal) -> str:
    """Two-decimal string, rounded half up, as platforms expect."""
    try:
        return str(price.quantize(_CENTS, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValidationError(f"Price out of range: {price}") from None


class PlatformClient(ApiClient, ABC):
    """Storefront adapter shared contract.

    `authenticate` verifies credentials with one lightweight read; every
    other method fails fast with `NotAuthenticatedError` until it succeeds.
    `update_price` sends the price field only.
    """

    platform: Platform

    authenticated: bool = False

    def _require_authenticated(self) -> None:
        if not self.authenticated or self._http is None:
            raise NotAuthenticatedError(
                f"{self.name} client not authenticated. Call authenticate() first."
            )

    @abstractmethod
    async def authenticate(self, credentials: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_all_products(self) -> list[ListingRecord]:
        raise NotImplementedError

    @abstractmethod
    async def update_price(self, listing: ListingRecord, new_price: PriceLike) -> None:
        raise NotImplementedError
