"""Shopify Admin REST client for the three calls the sync engine needs.

Any transport or HTTP failure surfaces as PlatformError; deciding whether
that is fatal (catalog build) or absorbed (level read/write) is left to
the caller.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx

from shared.core import get_logger
from stock_sync.domain.errors import PlatformError
from stock_sync.domain.models import CatalogVariant

logger = get_logger(__name__)

Identifier = Union[int, str]

RATE_LIMIT_RETRIES = 2
DEFAULT_RETRY_AFTER = 2.0

def _as_id(value: Identifier) -> Identifier:
    """Shopify expects numeric ids in JSON bodies."""
    text = str(value)
    return int(text) if text.isdigit() else text

def _retry_after(response: httpx.Response) -> float:
    """Seconds from Retry-After; HTTP-date or garbage values fall back to the default."""
    try:
        return max(0.0, float(response.headers.get("Retry-After", DEFAULT_RETRY_AFTER)))
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER

def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise PlatformError(
            f"{response.request.method} {response.url} returned a non-JSON body: {response.text[:200]}",
            status_code=response.status_code,
        ) from e
    if not isinstance(body, dict):
        raise PlatformError(f"{response.url} returned {type(body).__name__}, expected an object",
                            status_code=response.status_code)
    return body

class ShopifyClient:
    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str = "2024-07",
        page_size: int = 250,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = f"https://{store_domain}/admin/api/{api_version}"
        self.page_size = page_size
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        for attempt in range(RATE_LIMIT_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise PlatformError(f"{method} {url} failed: {e}") from e

            if response.status_code != 429:
                break
            if attempt < RATE_LIMIT_RETRIES:
                retry_after = _retry_after(response)
                logger.warning(f"Rate limited on {method} {url}, retrying in {retry_after}s")
                await self._sleep(retry_after)
        else:
            raise PlatformError(
                f"{method} {url} still rate limited after {RATE_LIMIT_RETRIES} retries", status_code=429
            )

        if response.status_code >= 400:
            raise PlatformError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def list_catalog_page(self, url: Optional[str] = None) -> Tuple[List[CatalogVariant], Optional[str]]:
        """One page of products flattened to variants, plus the next page URL."""
        if url is None:
            response = await self._request(
                "GET", "/products.json",
                params={"limit": self.page_size, "fields": "id,variants"},
            )
        else:
            response = await self._request("GET", url)

        try:
            variants = []
            for product in _json(response).get("products") or []:
                for variant in product.get("variants") or []:
                    item_id = variant.get("inventory_item_id")
                    variants.append(CatalogVariant(
                        sku=variant.get("sku"),
                        inventory_item_id=str(item_id) if item_id is not None else None,
                    ))
        except (AttributeError, TypeError) as e:
            raise PlatformError(f"Unexpected products payload from {response.url}: {e}") from e

        next_url = response.links.get("next", {}).get("url")
        return variants, next_url

    async def read_level(self, item_id: Identifier, location_id: Identifier) -> Optional[int]:
        response = await self._request(
            "GET", "/inventory_levels.json",
            params={"inventory_item_ids": str(item_id), "location_ids": str(location_id)},
        )
        try:
            levels: List[Dict[str, Any]] = _json(response).get("inventory_levels") or []
            if not levels or levels[0].get("available") is None:
                return None
            return int(levels[0]["available"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PlatformError(f"Unexpected inventory level payload for item {item_id}: {e}") from e

    async def write_level(self, item_id: Identifier, location_id: Identifier, available: int) -> None:
        await self._request(
            "POST", "/inventory_levels/set.json",
            json={
                "location_id": _as_id(location_id),
                "inventory_item_id": _as_id(item_id),
                "available": available,
            },
        )
