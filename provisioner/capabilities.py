from __future__ import annotations

"""
Capability catalog for the worker image.

The published worker image ships a ``capabilities.json`` describing every
browser it can run:

    {"caps": [{"BROWSER_NAME": "chrome", "PLATFORM": "LINUX", "VERSION": "64.0"}]}

The catalog fetches that document once, caches the result, and falls back to
Firefox and Chrome on Linux whenever the document cannot be used. The
fallback guarantees the proxy always advertises something to the grid.
"""

import logging
import threading
from typing import Any, Callable, List

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .tracking import ExceptionTracker, ProvisionerError
from .types import Capability, Platform, RegistrationRequest

LOGGER = logging.getLogger("Provisioner.Capabilities")

CHROME = "chrome"
FIREFOX = "firefox"
_FETCH_TIMEOUT = 10.0

FetchDocumentFunc = Callable[[str], Any]


class CapabilityFetchError(ProvisionerError):
    """Raised when the remote capability document cannot be used."""


class CapabilityEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    browser_name: str = Field(alias="BROWSER_NAME")
    platform: str = Field(alias="PLATFORM")
    version: str = Field(alias="VERSION")


class CapabilityDocument(BaseModel):
    caps: List[CapabilityEntry]


def fetch_capabilities_document(url: str) -> Any:
    """GET the capability document and return its decoded JSON body."""

    response = httpx.get(url, timeout=_FETCH_TIMEOUT, follow_redirects=True)
    response.raise_for_status()
    return response.json()


def fallback_capabilities() -> list[Capability]:
    return [
        Capability(browser_name=FIREFOX, platform=Platform.LINUX),
        Capability(browser_name=CHROME, platform=Platform.LINUX),
    ]


def parse_capabilities(payload: Any) -> list[Capability]:
    try:
        document = CapabilityDocument.model_validate(payload)
        return [
            Capability(
                browser_name=entry.browser_name,
                platform=Platform.from_string(entry.platform),
                version=entry.version,
                max_instances=1,
            )
            for entry in document.caps
        ]
    except (ValidationError, ValueError) as exc:
        raise CapabilityFetchError(f"Malformed capability document: {exc}") from exc


class CapabilityCatalog:
    """Resolve and cache the capabilities this proxy can launch workers for."""

    def __init__(
        self,
        url: str,
        *,
        fetch: FetchDocumentFunc = fetch_capabilities_document,
        tracker: ExceptionTracker | None = None,
    ) -> None:
        self._url = url
        self._fetch = fetch
        self._tracker = tracker
        self._capabilities: list[Capability] = []
        self._lock = threading.Lock()

    def resolve(self, url: str | None = None) -> list[Capability]:
        with self._lock:
            if self._capabilities:
                return list(self._capabilities)

            source = url or self._url
            capabilities = self._fetch_remote(source)
            if not capabilities:
                LOGGER.warning(
                    "Could not fetch capabilities from %s, falling back to defaults.",
                    source,
                )
                capabilities = fallback_capabilities()
            else:
                LOGGER.info("Capabilities fetched from %s", source)
            self._capabilities = capabilities
            return list(capabilities)

    def clear(self) -> None:
        with self._lock:
            self._capabilities = []

    def update_registration(
        self, request: RegistrationRequest, url: str | None = None
    ) -> RegistrationRequest:
        """Replace the advertised capabilities with the resolved set."""

        request.capabilities.clear()
        request.capabilities.extend(self.resolve(url))
        return request

    def _fetch_remote(self, url: str) -> list[Capability]:
        try:
            try:
                payload = self._fetch(url)
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
                raise CapabilityFetchError(f"Request failed: {exc}") from exc
            return parse_capabilities(payload)
        except CapabilityFetchError as exc:
            LOGGER.warning("%s", exc)
            if self._tracker is not None:
                self._tracker.track_exception(exc)
            return []
