"""HTTP client with linear retry backoff and request metrics."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class GeodataServiceError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None, body_excerpt: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body_excerpt = body_excerpt


class TransientServiceError(GeodataServiceError):
    """Non-success status (or connection error) that outlived every retry."""


class MalformedResponseError(GeodataServiceError):
    """Response that is not the JSON shape the caller expects. Never retried."""


@dataclass
class RequestMetrics:
    network_requests: int = 0
    retries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    failed_groups: int = 0
    failed_sites: int = 0

    def inc_network(self) -> None:
        self.network_requests += 1

    def inc_retry(self) -> None:
        self.retries += 1

    def inc_cache(self, hit: bool) -> None:
        if hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "network_requests": self.network_requests,
            "retries": self.retries,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "failed_groups": self.failed_groups,
            "failed_sites": self.failed_sites,
        }


class HttpClient:
    def __init__(
        self,
        timeout: float = 120,
        max_retries: int = 3,
        retry_delay_s: float = 1.5,
        excerpt_chars: int = 140,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_delay_s = retry_delay_s
        self.excerpt_chars = excerpt_chars
        self.metrics = metrics
        self.session = requests.Session()

    def post_text(self, url: str, body: str) -> Dict[str, Any]:
        headers = {"Content-Type": "text/plain"}
        payload = body.encode("utf-8")
        for attempt in range(1, self.max_retries + 1):
            if self.metrics is not None:
                self.metrics.inc_network()
            try:
                resp = self.session.post(url, data=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                if attempt >= self.max_retries:
                    raise TransientServiceError(
                        f"Request to {url} failed: {exc}", status=None, body_excerpt=str(exc)[: self.excerpt_chars]
                    ) from exc
                logger.warning("Request error from %s (attempt %s): %s", url, attempt, exc)
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if 200 <= status < 300:
                try:
                    return resp.json()
                except ValueError as exc:
                    excerpt = (resp.text or "")[: self.excerpt_chars]
                    logger.error("Non-JSON response from %s", url)
                    raise MalformedResponseError(
                        f"Non-JSON response from {url}", status=status, body_excerpt=excerpt
                    ) from exc

            excerpt = (resp.text or "")[: self.excerpt_chars]
            if attempt >= self.max_retries:
                raise TransientServiceError(
                    f"Overpass error {status}: {excerpt}", status=status, body_excerpt=excerpt
                )
            wait = self.retry_delay_s * attempt
            logger.warning("HTTP %s from %s (attempt %s). Retrying in %.1fs", status, url, attempt, wait)
            self._sleep_backoff(attempt)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        if self.metrics is not None:
            self.metrics.inc_retry()
        time.sleep(self.retry_delay_s * attempt)
