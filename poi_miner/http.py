"""HTTP client with retry/backoff and request budgeting."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class BudgetExceededError(RuntimeError):
    pass


@dataclass
class RequestMetrics:
    network_search: int = 0
    page_errors: int = 0
    cell_failures: int = 0
    quota_errors: int = 0

    @property
    def search_count(self) -> int:
        return self.network_search

    def inc_network(self) -> None:
        self.network_search += 1

    def inc_page_error(self, quota: bool = False) -> None:
        self.page_errors += 1
        if quota:
            self.quota_errors += 1

    def inc_cell_failure(self) -> None:
        self.cell_failures += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "search_requests": self.network_search,
            "page_errors": self.page_errors,
            "quota_errors": self.quota_errors,
            "cell_failures": self.cell_failures,
        }


class RequestBudget:
    def __init__(self, max_search: int, metrics: Optional[RequestMetrics] = None) -> None:
        self.max_search = max_search
        self.metrics = metrics
        self._search_count = 0

    @property
    def search_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_search)
        return self._search_count

    def remaining(self) -> int:
        return max(0, self.max_search - self.search_count)

    def consume(self) -> None:
        if self.remaining() <= 0:
            raise BudgetExceededError(
                f"Search request budget exhausted: {self.search_count} of {self.max_search} used"
            )
        if self.metrics is not None:
            self.metrics.inc_network()
        else:
            self._search_count += 1


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: int = 20,
        retry_max: int = 5,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = retry_max
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()

    def get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params)
        query["key"] = self.api_key
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = self.session.get(url, params=query, timeout=self.timeout)
            except requests.RequestException:
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if status in (429, 500, 502, 503, 504):
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    resp.raise_for_status()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            resp.raise_for_status()

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
