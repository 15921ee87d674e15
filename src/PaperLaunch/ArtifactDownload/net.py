# === NAVMAP v1 ===
# {
#   "module": "PaperLaunch.ArtifactDownload.net",
#   "purpose": "Provide the shared HTTPX client and the encrypted-transport URL guard",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used by catalog lookups and artifact downloads.

One :class:`HttpTransport` is constructed at startup and handed to the
catalog client and the downloader.  It builds its ``httpx.Client`` lazily on
first use and keeps it for the lifetime of the transport; the client is never
reconfigured after construction, so callers on other threads may share it.
"""

from __future__ import annotations

import logging
import ssl
import threading
import time
from typing import Optional
from urllib.parse import urlparse

import certifi
import httpx

from .errors import PolicyError
from .settings import HttpSettings

LOGGER = logging.getLogger("PaperLaunch.ArtifactDownload.net")

SECURE_SCHEME = "https"

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _request_hook(request: httpx.Request) -> None:
    request.extensions["paperlaunch_start"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("paperlaunch_start")
    elapsed_ms = None
    if isinstance(start, float):
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
    LOGGER.debug(
        "http response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_ms": elapsed_ms,
        },
    )


def build_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Construct an ``httpx.Client`` with the fixed launcher timeout."""

    cfg = settings or HttpSettings()
    return httpx.Client(
        timeout=httpx.Timeout(cfg.timeout_sec),
        verify=_build_ssl_context(),
        headers={"User-Agent": cfg.user_agent},
        trust_env=True,
        follow_redirects=False,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )


# --- Public API ----------------------------------------------------------------


def validate_url_security(url: str) -> str:
    """Reject any URL that does not use the encrypted transport scheme.

    Args:
        url: Catalog or artifact URL about to be fetched.

    Returns:
        The URL unchanged when it is acceptable.

    Raises:
        PolicyError: If the scheme is not ``https`` or the host is missing.
    """

    parsed = urlparse(url)
    if parsed.scheme.lower() != SECURE_SCHEME:
        LOGGER.error(
            "refusing insecure url",
            extra={"stage": "security", "url": url, "scheme": parsed.scheme},
        )
        raise PolicyError(f"Only HTTPS URLs are allowed for downloads: {url}")
    if not parsed.hostname:
        raise PolicyError(f"URL must include hostname: {url}")
    return url


class HttpTransport:
    """Owner of the single HTTPX client shared by catalog and downloader.

    Attributes:
        settings: HTTP settings used when the client is first built.

    Examples:
        >>> transport = HttpTransport(HttpSettings(timeout_sec=30))
        >>> transport.get_client() is transport.get_client()
        True
    """

    def __init__(
        self,
        settings: Optional[HttpSettings] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or HttpSettings()
        self._client = client
        self._lock = threading.Lock()

    def get_client(self) -> httpx.Client:
        """Return the shared client, creating it on first access."""

        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = build_http_client(self.settings)
                LOGGER.debug(
                    "HTTP client initialized",
                    extra={"stage": "http", "timeout_sec": self.settings.timeout_sec},
                )
            return self._client

    def close(self) -> None:
        """Close the underlying client; safe to call more than once."""

        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["HttpTransport", "build_http_client", "validate_url_security"]
