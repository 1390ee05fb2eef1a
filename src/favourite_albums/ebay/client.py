# src/favourite_albums/ebay/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from favourite_albums.domain.models import MarketplaceListing
from favourite_albums.http_utils import DEFAULT_TIMEOUT, send_with_rate_limit

logger = logging.getLogger(__name__)


TOKEN_URL = "https://api.ebay.com/identity/v1/oauth2/token"
TOKEN_SCOPE = "https://api.ebay.com/oauth/api_scope"
SEARCH_URL = "https://api.ebay.com/buy/browse/v1/item_summary/search"

VINYL_CATEGORY_ID = "176985"
RECORD_SIZES = ('12"', '10"')

DEFAULT_MARKETPLACE = "EBAY_GB"
DEFAULT_DELIVERY_COUNTRY = "GB"
DEFAULT_CURRENCY = "GBP"


class EbayError(RuntimeError):
    """An eBay request failed with a non-retryable status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def get_app_access_token(
    client_id: str,
    client_secret: str,
    *,
    http_client: httpx.Client | None = None,
) -> str:
    """Client-credentials grant for an application token."""
    client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)
    try:
        response = client.post(
            TOKEN_URL,
            data={"grant_type": "client_credentials", "scope": TOKEN_SCOPE},
            auth=(client_id, client_secret),
        )
    finally:
        if http_client is None:
            client.close()

    if response.is_error:
        msg = (
            f"eBay OAuth failed: {response.status_code} "
            f"{response.reason_phrase}\n{response.text}"
        )
        raise EbayError(msg, status_code=response.status_code)

    token = response.json().get("access_token")
    if not token:
        msg = "eBay OAuth response missing access_token."
        raise EbayError(msg)
    return token


class EbayClient:
    """Browse API search restricted to 12"/10" vinyl records."""

    def __init__(
        self,
        access_token: str,
        *,
        marketplace_id: str = DEFAULT_MARKETPLACE,
        delivery_country: str = DEFAULT_DELIVERY_COUNTRY,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)
        self._delivery_country = delivery_country
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "X-EBAY-C-MARKETPLACE-ID": marketplace_id,
            "X-EBAY-C-ENDUSERCTX": f"contextualLocation=country={delivery_country}",
        }
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "EbayClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def search(
        self,
        query: str,
        *,
        limit_per_page: int = 50,
        max_pages: int = 2,
    ) -> Iterator[MarketplaceListing]:
        """Yield listings for ``query``, paging by offset.

        Stops after ``max_pages`` pages or once the offset passes the
        reported total. Filtering beyond the server-side filter is left to
        the caller.
        """
        sizes = "|".join(RECORD_SIZES)
        base_params = {
            "q": query,
            "category_ids": VINYL_CATEGORY_ID,
            "aspect_filter": f"categoryId:{VINYL_CATEGORY_ID},Record Size:{{{sizes}}}",
            "filter": (
                "buyingOptions:{AUCTION|FIXED_PRICE},"
                f"deliveryCountry:{self._delivery_country}"
            ),
            "limit": limit_per_page,
        }

        offset = 0
        for page_number in range(1, max_pages + 1):
            data = self._get_json({**base_params, "offset": offset})

            items = data.get("itemSummaries") or []
            for raw in items:
                yield parse_item_summary(raw)

            total = data.get("total")
            total = total if isinstance(total, int) else 0
            offset += limit_per_page
            logger.debug(
                "[%s] page %d: got %d / total ~%d", query, page_number, len(items), total
            )
            if offset >= total:
                break

    def _get_json(self, params: dict[str, Any]) -> dict[str, Any]:
        response = send_with_rate_limit(
            self._client,
            "GET",
            SEARCH_URL,
            params=params,
            headers=self._headers,
            sleep=self._sleep,
        )
        if response.is_error:
            msg = (
                f"eBay search failed: {response.status_code} "
                f"{response.reason_phrase}\n{response.text}"
            )
            raise EbayError(msg, status_code=response.status_code)
        return response.json()


def parse_item_summary(raw: dict[str, Any]) -> MarketplaceListing:
    """Turn one ``itemSummaries`` entry into a listing."""
    price = (
        _amount(raw.get("currentBidPrice"))
        or _amount(raw.get("price"))
        or (DEFAULT_CURRENCY, Decimal("0"))
    )
    price_currency, price_value = price

    shipping = _shipping_amount(raw) or (price_currency, Decimal("0"))
    shipping_currency, shipping_value = shipping

    if shipping_currency == price_currency:
        total = price_value + shipping_value
    else:
        total = price_value

    image = raw.get("image")
    seller = raw.get("seller")
    buying = raw.get("buyingOptions") or []

    return MarketplaceListing(
        item_id=_str(raw.get("itemId")) or "",
        title=_str(raw.get("title")) or "",
        url=_str(raw.get("itemWebUrl")) or "",
        image_url=_str(image.get("imageUrl")) if isinstance(image, dict) else None,
        currency=price_currency,
        price=price_value,
        shipping=shipping_value,
        total=total,
        end_time=_parse_datetime(raw.get("itemEndDate")),
        seller=_str(seller.get("username")) if isinstance(seller, dict) else None,
        buying_options=frozenset(str(b).upper() for b in buying if b),
    )


def _amount(raw: Any) -> tuple[str, Decimal] | None:
    if not isinstance(raw, dict):
        return None
    currency = _str(raw.get("currency")) or _str(raw.get("convertedFromCurrency")) or DEFAULT_CURRENCY
    value = _str(raw.get("value")) or _str(raw.get("convertedFromValue"))
    if value is None:
        return None
    try:
        return currency, Decimal(value)
    except InvalidOperation:
        return None


def _shipping_amount(raw: dict[str, Any]) -> tuple[str, Decimal] | None:
    options = raw.get("shippingOptions")
    if isinstance(options, list) and options and isinstance(options[0], dict):
        return _amount(options[0].get("shippingCost"))
    return None


def _str(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _parse_datetime(value: Any) -> datetime | None:
    text = _str(value)
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
