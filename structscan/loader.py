from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from curl_cffi import requests as curl_requests

from .errors import TreeAccessError
from .soup_tree import SoupTree


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class DocumentLoader:
    """Builds SoupTree documents from markup, files or URLs.

    Plain fetches go through ``requests``; passing ``impersonate`` (for
    example ``"chrome120"``) switches to a ``curl_cffi`` session that presents
    a browser TLS fingerprint. Failures are never retried.
    """

    def __init__(
        self,
        timeout: int = 20,
        headers: Optional[Dict[str, str]] = None,
        parser: str = "html.parser",
        viewport_width: float = 1280.0,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(DEFAULT_HEADERS if headers is None else headers)
        self._parser = parser
        self._viewport_width = viewport_width

    def from_html(self, markup: str, base_url: Optional[str] = None) -> SoupTree:
        return SoupTree(markup, base_url=base_url, parser=self._parser, viewport_width=self._viewport_width)

    def load_file(self, path: str, base_url: Optional[str] = None) -> SoupTree:
        try:
            markup = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise TreeAccessError(f"cannot read {path}: {exc}") from exc
        return self.from_html(markup, base_url=base_url or Path(path).resolve().as_uri())

    def fetch(self, url: str, impersonate: Optional[str] = None) -> SoupTree:
        response = self._request(url, impersonate)
        status_code = getattr(response, "status_code", None)
        if status_code is None or not 200 <= status_code < 300:
            raise TreeAccessError(f"GET {url} returned http_{status_code}")
        final_url = str(getattr(response, "url", "") or url)
        logger.info("loaded %s (%s, %d bytes)", final_url, status_code, len(response.text))
        return self.from_html(response.text, base_url=final_url)

    def _request(self, url: str, impersonate: Optional[str]) -> Any:
        try:
            if impersonate:
                session = curl_requests.Session()
                try:
                    return session.request(
                        method="GET",
                        url=url,
                        headers=self._headers,
                        impersonate=impersonate,
                        timeout=self._timeout,
                    )
                finally:
                    session.close()
            return requests.get(url, headers=self._headers, timeout=self._timeout)
        except Exception as exc:  # noqa: BLE001
            raise TreeAccessError(f"GET {url} failed: {type(exc).__name__}: {exc}") from exc
