"""
Throttled, retrying HTTP client used by every source adapter.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

from db.config import redact_url
from rentindex.scraping.config.models import FetchSettings
from rentindex.scraping.errors import TransientFetchError
from rentindex.scraping.logging_utils import log_event
from rentindex.scraping.pacing import ConcurrencyLimiter, StealthPacer

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
ACCEPTED_CONTENT_TYPES = ("text/html", "text/plain", "application/xhtml+xml")
MAX_BODY_BYTES = 8 * 1024 * 1024
MAX_RETRY_AFTER_SECONDS = 60.0

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class FetchOutcome:
    OK = "ok"
    PERMANENT = "permanent"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class FetchResult:
    url: str
    outcome: str
    html: str | None = None
    status_code: int | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.OK


class _DeadlineExceeded(Exception):
    pass


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, retry_after: float | None) -> None:
        super().__init__(f"Retryable status={status_code}")
        self.status_code = status_code
        self.retry_after = retry_after


class ThrottledFetchClient:
    """
    Fetches HTML pages under a concurrency cap, with pacing, retry/backoff,
    a hard per-request deadline and an optional forward proxy.

    Retryable: timeouts, connection errors, HTTP 429/502/503/504.
    Permanent: every other non-2xx status and non-HTML content.
    """

    def __init__(
        self,
        *,
        settings: FetchSettings,
        pacer: StealthPacer,
        limiter: ConcurrencyLimiter | None = None,
        session: requests.Session | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._pacer = pacer
        self._limiter = limiter or ConcurrencyLimiter(settings.concurrency_limit)
        self._session = session or requests.Session()
        self._monotonic = monotonic
        self._headers = {"User-Agent": settings.user_agent, **DEFAULT_HEADERS}

        if settings.proxy_url:
            self._session.proxies.update({"http": settings.proxy_url, "https": settings.proxy_url})
            log_event(
                logger,
                logging.INFO,
                "fetch_proxy_enabled",
                proxy=redact_url(settings.proxy_url),
            )

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    @property
    def pacer(self) -> StealthPacer:
        return self._pacer

    def fetch(self, url: str) -> str | None:
        """
        Return the page HTML, or None on any failure.
        """

        result = self.fetch_page(url)
        return result.html if result.ok else None

    def fetch_or_raise(self, url: str) -> str | None:
        """
        Like ``fetch`` but raises ``TransientFetchError`` when retries were
        exhausted on a retryable failure, so the caller can retry later.
        """

        result = self.fetch_page(url)
        if result.outcome == FetchOutcome.TRANSIENT:
            raise TransientFetchError(
                result.error or f"Transient failure fetching {url}",
                url=url,
                status_code=result.status_code,
            )
        return result.html if result.ok else None

    def fetch_page(self, url: str) -> FetchResult:
        max_retries = self._settings.max_retries
        last_error: str | None = None
        last_status: int | None = None

        for attempt in range(max_retries + 1):
            retry_after: float | None = None
            with self._limiter:
                if attempt > 0 or self._limiter.active > 1:
                    self._pacer.polite_delay()
                try:
                    return self._request_once(url, attempt=attempt)
                except _RetryableStatus as exc:
                    last_status = exc.status_code
                    last_error = str(exc)
                    retry_after = exc.retry_after
                except _DeadlineExceeded as exc:
                    last_status = None
                    last_error = str(exc)
                except (requests.Timeout, requests.ConnectionError, requests.exceptions.ChunkedEncodingError) as exc:
                    last_status = None
                    last_error = f"{type(exc).__name__}: {exc}"

            if attempt >= max_retries:
                break

            log_event(
                logger,
                logging.WARNING,
                "fetch_retrying",
                url=url,
                attempt=attempt + 1,
                max_retries=max_retries,
                status_code=last_status,
                error=last_error,
            )
            slept = self._pacer.backoff(
                attempt,
                base_seconds=self._settings.backoff_base_seconds,
                jitter_seconds=self._settings.backoff_jitter_seconds,
            )
            if retry_after is not None and retry_after > slept:
                self._pacer.pause(retry_after - slept)

        log_event(
            logger,
            logging.WARNING,
            "fetch_failed_transient",
            url=url,
            attempts=max_retries + 1,
            status_code=last_status,
            error=last_error,
        )
        return FetchResult(
            url=url,
            outcome=FetchOutcome.TRANSIENT,
            status_code=last_status,
            error=last_error,
            attempts=max_retries + 1,
        )

    def _request_once(self, url: str, *, attempt: int) -> FetchResult:
        deadline = self._monotonic() + self._settings.timeout_seconds
        response = self._session.get(
            url,
            headers=self._headers,
            timeout=(self._settings.connect_timeout_seconds, self._settings.timeout_seconds),
            allow_redirects=True,
            stream=True,
        )
        try:
            status_code = response.status_code
            if status_code in RETRYABLE_STATUS_CODES:
                raise _RetryableStatus(status_code, _parse_retry_after(response.headers.get("Retry-After")))
            if status_code >= 400:
                log_event(logger, logging.WARNING, "fetch_failed_permanent", url=url, status_code=status_code)
                return FetchResult(
                    url=url,
                    outcome=FetchOutcome.PERMANENT,
                    status_code=status_code,
                    error=f"HTTP {status_code}",
                    attempts=attempt + 1,
                )

            content_type = (response.headers.get("Content-Type") or "").lower()
            if not any(accepted in content_type for accepted in ACCEPTED_CONTENT_TYPES):
                log_event(
                    logger,
                    logging.WARNING,
                    "fetch_unsupported_content_type",
                    url=url,
                    content_type=content_type,
                )
                return FetchResult(
                    url=url,
                    outcome=FetchOutcome.PERMANENT,
                    status_code=status_code,
                    error=f"Unsupported content type '{content_type}'",
                    attempts=attempt + 1,
                )

            body = self._read_body(response, url=url, deadline=deadline)
            html = _decode_body(body, content_type=content_type, declared=response.encoding)
            return FetchResult(
                url=url,
                outcome=FetchOutcome.OK,
                html=html,
                status_code=status_code,
                attempts=attempt + 1,
            )
        finally:
            response.close()

    def _read_body(self, response: requests.Response, *, url: str, deadline: float) -> bytes:
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_content(chunk_size=16384):
            if self._monotonic() > deadline:
                raise _DeadlineExceeded(
                    f"Request exceeded {self._settings.timeout_seconds:.0f}s wall-clock timeout"
                )
            if not chunk:
                continue
            if size + len(chunk) > MAX_BODY_BYTES:
                chunks.append(chunk[: MAX_BODY_BYTES - size])
                log_event(logger, logging.WARNING, "fetch_body_truncated", url=url, max_bytes=MAX_BODY_BYTES)
                break
            size += len(chunk)
            chunks.append(chunk)
        return b"".join(chunks)


def _decode_body(body: bytes, *, content_type: str, declared: str | None) -> str:
    # requests reports ISO-8859-1 for any text/* response without a charset,
    # which garbles UTF-8 pages. Only trust an explicit charset.
    encoding = declared if declared and "charset=" in content_type else "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return min(max(0.0, seconds), MAX_RETRY_AFTER_SECONDS)
