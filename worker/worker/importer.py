from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from worker.config import WorkerSettings, get_settings
from worker.extraction.base import ExtractedProduct

RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}

logger = logging.getLogger(__name__)


class ImportClient:
    """Ships extracted products to the batch import endpoint."""

    def __init__(
        self,
        token: str,
        settings: WorkerSettings | None = None,
        client: httpx.Client | None = None,
        retry_backoff_seconds: float = 0.6,
    ) -> None:
        self.settings = settings or get_settings()
        self.max_retries = max(0, self.settings.import_max_retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.client = client or httpx.Client(
            base_url=self.settings.api_base_url,
            timeout=30.0,
            headers={"Authorization": f"Bearer {token}", "User-Agent": "DroplineImporter/1.0"},
        )

    def import_products(
        self,
        products: list[ExtractedProduct],
        auto_approve: bool = False,
        price_adjustment: dict[str, object] | None = None,
    ) -> dict[str, Any]:
        limit = self.settings.max_products_per_batch
        if len(products) > limit:
            logger.warning("Batch of %s products truncated to %s", len(products), limit)
            products = products[:limit]

        import_settings: dict[str, object] = {"auto_approve": auto_approve}
        if price_adjustment:
            import_settings["price_adjustment"] = price_adjustment
        body = {
            "products": [product.to_payload() for product in products],
            "import_settings": import_settings,
        }
        response = self._post_with_retries("/v1/imports", body)
        result = response.json()
        logger.info(
            "Import job %s: %s successful, %s skipped, %s failed",
            result.get("import_job_id"),
            result.get("successful"),
            result.get("skipped"),
            result.get("failed"),
        )
        return result

    def _post_with_retries(self, path: str, body: dict[str, object]) -> httpx.Response:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self.client.post(path, json=body)
                if response.status_code in RETRYABLE_HTTP_STATUSES:
                    raise httpx.HTTPStatusError(
                        f"Retryable status {response.status_code} for {path}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                return response
            except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as exc:
                if isinstance(exc, httpx.HTTPStatusError):
                    status = exc.response.status_code if exc.response is not None else None
                    if status not in RETRYABLE_HTTP_STATUSES:
                        raise

                if attempt >= attempts - 1:
                    raise

                backoff = self.retry_backoff_seconds * (2**attempt)
                if backoff > 0:
                    time.sleep(backoff)
                logger.warning("Retrying POST %s after error (%s), attempt %s/%s", path, exc, attempt + 1, attempts)
        raise RuntimeError(f"Unreachable retry state for {path}")
