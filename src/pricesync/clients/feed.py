"""
Pricing feed client (StreetPricer API).

Authenticates with a username/password token exchange, lists the
organization's sub-accounts and paginates each sub-account's items.
Raw items are validated into `FeedRecord`s; invalid ones are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..config import FeedConfig, RetryConfig
from ..errors import AuthenticationError, NetworkError, PriceSyncError
from ..models import FeedRecord, utcnow
from .http import DEFAULT_TIMEOUT, ApiClient, Sleep

logger = logging.getLogger(__name__)

_ID_KEYS = ("id", "ID", "ItemID", "NewItemID", "IPN")
_PRICE_KEYS = ("price", "Price", "NewPrice", "ConvertedPrice")
_SKU_KEYS = ("sku", "SKU")
_NAME_KEYS = ("name", "Title", "ListingTitle")
_CURRENCY_KEYS = ("currency", "PriceCurr")
_UPDATED_KEYS = ("last_updated", "Modified", "GTINUpdated")
_SUB_ACCOUNT_ID_KEYS = ("id", "storeId", "store_id", "EbayUserID", "SellingPartnerID")


def _first(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _parse_price(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite():
        return None
    return price


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            pass
    return utcnow()


def parse_feed_record(raw: Any) -> Optional[FeedRecord]:
    """Validate one raw feed item. Returns None (and logs) when unusable."""
    if not isinstance(raw, dict):
        logger.warning(f"[StreetPricer] Skipping non-object item: {raw!r}")
        return None

    raw_id = _first(raw, _ID_KEYS)
    record_id = str(raw_id).strip() if raw_id is not None else ""
    if not record_id:
        logger.warning(f"[StreetPricer] Product missing or invalid id: {raw}")
        return None

    price = _parse_price(_first(raw, _PRICE_KEYS))
    if price is None:
        logger.warning(f"[StreetPricer] Product missing or invalid price: {raw}")
        return None

    return FeedRecord(
        id=record_id,
        sku=str(_first(raw, _SKU_KEYS) or ""),
        name=str(_first(raw, _NAME_KEYS) or ""),
        price=price,
        currency=str(_first(raw, _CURRENCY_KEYS) or "USD"),
        last_updated=_parse_timestamp(_first(raw, _UPDATED_KEYS)),
    )


def _json_body(response: httpx.Response, endpoint: str) -> Any:
    """Decoded JSON body; a non-JSON answer is a non-retryable NetworkError."""
    try:
        return response.json()
    except ValueError as e:
        raise NetworkError(
            f"StreetPricer returned a non-JSON body for {endpoint}: {e}",
            status_code=response.status_code,
            retryable=False,
        ) from e


def _is_not_found(error: PriceSyncError) -> bool:
    return error.status_code == 404


class SourceFeedClient(ApiClient):
    """Client for the authoritative pricing feed.

    Every request is retried with exponential backoff (see `RetryConfig`).
    The flat products endpoint is used only when the sub-account endpoints
    answer 404 or no sub-accounts exist.
    """

    name = "StreetPricer"

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        retry: Optional[RetryConfig] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(
            retry=retry or RetryConfig(),
            timeout=timeout,
            transport=transport,
            sleep=sleep,
        )
        self.config = config or FeedConfig()
        self.stores_endpoint = "/" + self.config.stores_endpoint.strip("/")
        self.products_endpoint = "/" + self.config.products_endpoint.strip("/")
        self.authenticated = False
        self._token: Optional[str] = None

    async def authenticate(self) -> None:
        """Exchange the API key/secret for a bearer token.

        Raises:
            AuthenticationError: credentials missing or rejected.
        """
        if not self.config.api_key or not self.config.api_secret:
            raise AuthenticationError("StreetPricer API credentials not configured")

        if self._http is None:
            self._http = self._build_http(base_url=self.config.api_url.rstrip("/"))

        self.authenticated = False
        self._token = None
        try:
            response = await self._send_once(
                "POST",
                "/auth/token",
                data={
                    "username": self.config.api_key,
                    "password": self.config.api_secret,
                },
            )
            token = response.json().get("token")
        except (PriceSyncError, ValueError, AttributeError) as e:
            raise AuthenticationError(f"StreetPricer authentication failed: {e}") from e

        if not token:
            raise AuthenticationError(
                "StreetPricer authentication failed: no token in response"
            )

        self._token = token
        self._http.headers["Authorization"] = f"Bearer {token}"
        self.authenticated = True
        logger.info("[StreetPricer] Authentication successful")

    async def fetch_all_records(self) -> list[FeedRecord]:
        """Fetch every valid feed record across all sub-accounts."""
        if not self.authenticated:
            await self.authenticate()

        try:
            return await self._fetch_across_sub_accounts()
        except AuthenticationError:
            # Token expired or revoked; the next call authenticates again
            self.authenticated = False
            raise
        except NetworkError as e:
            if not _is_not_found(e):
                raise
            logger.warning(
                f"[StreetPricer] Per-store endpoint not found, "
                f"falling back to {self.products_endpoint}: {e}"
            )
            return await self._fetch_pages(self.products_endpoint)

    async def fetch_records_by_category(self, category: str) -> list[FeedRecord]:
        """Fetch records of one category from the flat products endpoint."""
        if not self.authenticated:
            await self.authenticate()
        return await self._fetch_pages(self.products_endpoint, {"category": category})

    async def _fetch_sub_accounts(self) -> list[dict[str, Any]]:
        response = await self._request("GET", self.stores_endpoint)
        data = _json_body(response, self.stores_endpoint)
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ("stores", "items"):
                if isinstance(data.get(key), list):
                    return data[key]
        return []

    async def _fetch_across_sub_accounts(self) -> list[FeedRecord]:
        sub_accounts = await self._fetch_sub_accounts()
        if not sub_accounts:
            logger.warning(
                f"[StreetPricer] No stores returned, using {self.products_endpoint}"
            )
            return await self._fetch_pages(self.products_endpoint)

        records: list[FeedRecord] = []
        failures: list[PriceSyncError] = []

        for index, sub_account in enumerate(sub_accounts):
            raw_id = (
                _first(sub_account, _SUB_ACCOUNT_ID_KEYS)
                if isinstance(sub_account, dict)
                else None
            )
            sub_account_id = str(raw_id).strip() if raw_id is not None else ""
            if not sub_account_id:
                logger.warning(f"[StreetPricer] Skipping store with missing id: {sub_account}")
                continue

            endpoint = f"{self.stores_endpoint}/{quote(sub_account_id, safe='')}/items"
            try:
                items = await self._fetch_pages(endpoint)
            except AuthenticationError:
                raise
            except PriceSyncError as e:
                logger.error(
                    f"[StreetPricer] Failed to fetch products for store {sub_account_id}: {e}"
                )
                failures.append(e)
                continue

            records.extend(items)
            logger.info(
                f"[StreetPricer] Fetched {len(items)} products from store {sub_account_id}"
            )
            if index < len(sub_accounts) - 1 and self.config.store_pause_seconds > 0:
                await self._sleep(self.config.store_pause_seconds)

        if not records and failures:
            if all(_is_not_found(f) for f in failures):
                raise failures[0]
            raise NetworkError(
                "Per-store fetch failed for all stores: "
                + "; ".join(str(f) for f in failures)
            )

        logger.info(
            f"[StreetPricer] Aggregated {len(records)} products across "
            f"{len(sub_accounts)} stores"
        )
        return records

    async def _fetch_pages(
        self, endpoint: str, params: Optional[dict[str, Any]] = None
    ) -> list[FeedRecord]:
        records: list[FeedRecord] = []
        page = 1

        for _ in range(self.config.max_pages):
            response = await self._request(
                "GET", endpoint, params={**(params or {}), "page": page}
            )
            data = _json_body(response, endpoint)
            items = data if isinstance(data, list) else (data or {}).get("items") or []

            valid = [r for r in map(parse_feed_record, items) if r is not None]
            records.extend(valid)
            logger.debug(
                f"[StreetPricer] {len(valid)}/{len(items)} valid products "
                f"from {endpoint} page={page}"
            )

            if not isinstance(data, dict):
                break
            total_pages = data.get("total_page")
            current = data.get("page", page)
            if not isinstance(current, int):
                current = page
            if isinstance(total_pages, int) and current < total_pages:
                page = current + 1
                continue
            break
        else:
            logger.warning(
                f"[StreetPricer] Page ceiling ({self.config.max_pages}) reached for {endpoint}"
            )

        return records

    async def close(self) -> None:
        await super().close()
        self.authenticated = False
        self._token = None


__all__ = ["SourceFeedClient", "parse_feed_record"]
