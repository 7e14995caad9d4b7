# === NAVMAP v1 ===
# {
#   "module": "GeoStage.LayerResolve.net",
#   "purpose": "Provide the shared HTTPX client and the fetch-to-disk collaborator",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "protocol", "name": "Fetcher protocol", "anchor": "PROTO", "kind": "api"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client and the HTTP fetch collaborator.

The resolver core only needs two things from the network: stream a GET into a
file and hand back the response headers, and GET a small text document.
:class:`Fetcher` names that contract so tests and embedding applications can
swap the transport; :class:`HttpFetcher` is the default implementation on top
of a process-wide :class:`httpx.Client`.
"""

from __future__ import annotations

import logging
import ssl
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

import certifi
import httpx

from .errors import NetworkError
from .settings import ResolverSettings, get_settings

LOGGER = logging.getLogger("GeoStage.LayerResolve.net")

__all__ = [
    "Fetcher",
    "HttpFetcher",
    "get_http_client",
    "configure_http_client",
    "close_http_client",
]

# --- Constants & globals -------------------------------------------------------

_CHUNK_SIZE = 1 << 16
_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None

# --- Fetcher protocol ----------------------------------------------------------


@runtime_checkable
class Fetcher(Protocol):
    """Transport used by the download coordinator."""

    def fetch_to_disk(self, url: str, destination: Path) -> Dict[str, str]:
        """Write the body of ``url`` to ``destination`` and return response headers."""

    def fetch_text(self, url: str) -> str:
        """Return the body of ``url`` decoded as text."""


# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _build_client(settings: ResolverSettings) -> httpx.Client:
    timeout = httpx.Timeout(
        settings.read_timeout_sec,
        connect=settings.connect_timeout_sec,
    )
    return httpx.Client(
        timeout=timeout,
        follow_redirects=settings.follow_redirects,
        verify=_build_ssl_context(),
        headers={"User-Agent": settings.user_agent},
    )


def _raise_for_status(url: str, response: httpx.Response) -> None:
    if response.is_success:
        return
    raise NetworkError(
        f"GET {url} failed with HTTP {response.status_code}",
        url=url,
        status_code=response.status_code,
    )


# --- Public API ----------------------------------------------------------------


def get_http_client() -> httpx.Client:
    """Return the lazily created process-wide HTTPX client."""

    global _HTTP_CLIENT  # noqa: PLW0603

    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            _HTTP_CLIENT = _build_client(get_settings())
            LOGGER.debug("http client initialised", extra={"stage": "download"})
        return _HTTP_CLIENT


def configure_http_client(client: Optional[httpx.Client]) -> None:
    """Install ``client`` as the shared client (``None`` restores lazy creation)."""

    global _HTTP_CLIENT  # noqa: PLW0603

    with _CLIENT_LOCK:
        _HTTP_CLIENT = client


def close_http_client() -> None:
    """Close and forget the shared client; safe to call repeatedly."""

    global _HTTP_CLIENT  # noqa: PLW0603

    with _CLIENT_LOCK:
        client, _HTTP_CLIENT = _HTTP_CLIENT, None
    if client is not None:
        client.close()


class HttpFetcher:
    """Default :class:`Fetcher` streaming responses through HTTPX.

    Args:
        client: Explicit client to use; the shared client when omitted.
    """

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.Client:
        return self._client if self._client is not None else get_http_client()

    def fetch_to_disk(self, url: str, destination: Path) -> Dict[str, str]:
        try:
            with self.client.stream("GET", url) as response:
                _raise_for_status(url, response)
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes(_CHUNK_SIZE):
                        handle.write(chunk)
                headers = {key.lower(): value for key, value in response.headers.items()}
        except httpx.HTTPError as exc:
            raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc
        LOGGER.debug(
            "download written",
            extra={"stage": "download", "url": url, "path": str(destination)},
        )
        return headers

    def fetch_text(self, url: str) -> str:
        try:
            response = self.client.get(url)
        except httpx.HTTPError as exc:
            raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc
        _raise_for_status(url, response)
        return response.text
