from __future__ import annotations

# `json` decoding errors are re-raised as `DataSourceError` so callers handle one exception type.
import json
# `logging` records fetch sizes and failures; the sources above us decide how to degrade.
import logging
from typing import Any, Mapping, Optional

# `requests` performs HTTP calls; we wrap it to centralize retries, timeouts and error handling.
import requests
# `HTTPAdapter` lets us mount a retry policy onto a `requests.Session`.
from requests.adapters import HTTPAdapter
# `Retry` implements backoff for transient failures (rate limits, 5xx), without manual sleep loops.
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)


# Raised for any failure to obtain a usable payload (transport error, non-2xx status, invalid JSON).
class DataSourceError(RuntimeError):
    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class HttpFetcher:
    """
    Minimal HTTP client for the station feed and the trip export.

    - One `Session` per fetcher (keep-alive across the two downloads).
    - Retries for transient failures via a mounted urllib3 policy.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        user_agent: str = "bikeflow/0.1.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        # A single timeout value keeps behavior predictable and avoids hanging the load step.
        self._timeout_s = timeout_s
        # Tests inject a prepared session; otherwise we own (and close) our own.
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=max_retries,
            connect=max_retries,
            read=max_retries,
            status=max_retries,
            backoff_factor=backoff_factor,
            # Retry only on status codes that are likely transient or rate-limit related.
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET",),
            respect_retry_after_header=True,
            # We surface a single `DataSourceError` with context instead of urllib3's exception.
            raise_on_status=False,
        )
        self._session.mount("https://", HTTPAdapter(max_retries=retry))
        self._session.mount("http://", HTTPAdapter(max_retries=retry))

    def _get(self, url: str, *, params: Optional[Mapping[str, Any]] = None) -> requests.Response:
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout_s)
        except requests.RequestException as e:
            raise DataSourceError(f"Request failed url={url}: {e}", url=url) from e

        # Treat any 4xx/5xx as an error; the retry adapter already handled transient ones.
        if resp.status_code >= 400:
            raise DataSourceError(
                f"Request failed ({resp.status_code}) url={url} body={resp.text[:500]}",
                url=url,
                status=resp.status_code,
            )
        return resp

    def get_text(self, url: str, *, params: Optional[Mapping[str, Any]] = None) -> str:
        resp = self._get(url, params=params)
        logger.info("Fetched %s bytes from %s", len(resp.content), url)
        return resp.text

    def get_json(self, url: str, *, params: Optional[Mapping[str, Any]] = None) -> Any:
        resp = self._get(url, params=params)
        try:
            return resp.json()
        except (ValueError, json.JSONDecodeError) as e:
            raise DataSourceError(f"Invalid JSON from url={url}: {e}", url=url, status=resp.status_code) from e

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
