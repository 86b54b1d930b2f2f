"""Shopify Admin API catalog reader and writer."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import re
from typing import Any

import httpx

from catalog_sync.ingest.models import RemoteRecord
from catalog_sync.utils.rate_limit import RateLimiter
from catalog_sync.utils.retry import retry_async

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250
NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

PRODUCT_CATEGORY_MUTATION = """
mutation productUpdate($product: ProductUpdateInput!) {
  productUpdate(product: $product) {
    product { id category { id name } }
    userErrors { field message }
  }
}
"""


class ShopifyAPIError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def next_page_url(link_header: str | None) -> str | None:
    if not link_header:
        return None
    for part in link_header.split(","):
        match = NEXT_LINK_RE.search(part)
        if match:
            return match.group(1)
    return None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors is None:
        return response.reason_phrase
    return errors if isinstance(errors, str) else json.dumps(errors)


class ShopifyCatalogClient:
    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        concurrency: int = 10,
        timeout: float = 30.0,
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        page_delay: float = 0.2,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._semaphore = asyncio.Semaphore(concurrency)
        self._rate_limiter = rate_limiter or RateLimiter(rate=2.0)
        self._page_delay = page_delay

    async def close(self) -> None:
        await self._session.aclose()

    async def fetch_all(self) -> list[RemoteRecord]:
        """Page through every product; a 429 ends paging with what was fetched."""
        records: list[RemoteRecord] = []
        url: str | None = f"{self.base_url}/products.json?limit={PAGE_LIMIT}"
        while url:
            logger.debug("Fetching products: %s", url)
            response = await self._get(url)
            if response.status_code == 429:
                logger.warning("Rate limited after %s products; using partial product list", len(records))
                self._rate_limiter.penalize()
                break
            self._raise_for_status(response)
            for item in response.json().get("products", []):
                records.append(RemoteRecord.from_api(item))
            url = next_page_url(response.headers.get("Link"))
            if url and self._page_delay:
                await asyncio.sleep(self._page_delay)
        logger.info("Fetched %s existing products", len(records))
        return records

    async def create(self, payload: dict[str, Any]) -> RemoteRecord:
        body = {key: value for key, value in payload.items() if key != "category"}
        response = await self._send("POST", f"{self.base_url}/products.json", json={"product": body})
        product = RemoteRecord.from_api(response.json()["product"])
        logger.info("Created product: %s (ID: %s)", product.title, product.id)
        category = payload.get("category")
        if category:
            try:
                await self.set_category(product.id, category)
            except (ShopifyAPIError, httpx.HTTPError) as exc:
                logger.warning("Failed to set category for product %s: %s", product.id, exc)
        return product

    async def update(self, identifier: str, payload: dict[str, Any]) -> RemoteRecord:
        response = await self._send(
            "PUT", f"{self.base_url}/products/{identifier}.json", json={"product": payload}
        )
        product = RemoteRecord.from_api(response.json()["product"])
        logger.debug("Updated product: %s (ID: %s)", product.title, product.id)
        return product

    async def delete(self, identifier: str) -> None:
        await self._send("DELETE", f"{self.base_url}/products/{identifier}.json")
        logger.info("Deleted product %s", identifier)

    async def set_category(self, product_id: str, category_id: str) -> None:
        variables = {"product": {"id": f"gid://shopify/Product/{product_id}", "category": category_id}}
        response = await self._send(
            "POST",
            f"{self.base_url}/graphql.json",
            json={"query": PRODUCT_CATEGORY_MUTATION, "variables": variables},
        )
        data = response.json()
        if data.get("errors"):
            raise ShopifyAPIError(f"GraphQL errors: {json.dumps(data['errors'])}")
        user_errors = ((data.get("data") or {}).get("productUpdate") or {}).get("userErrors") or []
        if user_errors:
            detail = ", ".join(f"{'.'.join(e.get('field') or [])}: {e.get('message')}" for e in user_errors)
            raise ShopifyAPIError(f"User errors: {detail}")
        logger.debug("Category for product %s set to %s", product_id, category_id)

    @retry_async
    async def _get(self, url: str) -> httpx.Response:
        async with self._semaphore:
            await self._rate_limiter.acquire()
            return await self._session.get(url, headers=self._headers)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with self._semaphore:
            await self._rate_limiter.acquire()
            response = await self._session.request(method, url, headers=self._headers, **kwargs)
        if response.status_code == 429:
            self._rate_limiter.penalize()
        self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ShopifyAPIError(
            f"{response.request.method} {response.request.url.path} failed: "
            f"{response.status_code} {_error_detail(response)}",
            status_code=response.status_code,
        )


class DryRunWriter:
    """Writer that logs the calls it would make and fabricates remote ids."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.calls: list[tuple[str, str | None, dict[str, Any] | None]] = []

    async def create(self, payload: dict[str, Any]) -> RemoteRecord:
        self.calls.append(("create", None, payload))
        logger.info("[DRY RUN] Would create product: %s", payload.get("title"))
        return RemoteRecord(id=f"dry-run-{next(self._ids)}", title=payload.get("title") or "", status=payload.get("status"))

    async def update(self, identifier: str, payload: dict[str, Any]) -> RemoteRecord:
        self.calls.append(("update", identifier, payload))
        logger.info("[DRY RUN] Would update product %s: %s", identifier, sorted(payload))
        return RemoteRecord(id=identifier, title=payload.get("title") or "", status=payload.get("status"))

    async def delete(self, identifier: str) -> None:
        self.calls.append(("delete", identifier, None))
        logger.info("[DRY RUN] Would delete product %s", identifier)
