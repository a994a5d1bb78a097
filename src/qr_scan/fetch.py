"""Remote document retrieval over HTTP(S)."""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests

from qr_scan.errors import AcquisitionError

logger = logging.getLogger(__name__)

ACCEPT = "application/pdf, image/*;q=0.9, */*;q=0.1"
USER_AGENT = "qr-scan/0.1"


@dataclass
class FetchedResource:
    content: bytes
    content_type: Optional[str]
    status_code: int

    @property
    def mime_type(self) -> Optional[str]:
        """The media type without parameters, e.g. ``image/png``."""
        if not self.content_type:
            return None
        return self.content_type.split(";", 1)[0].strip().lower() or None


def fetch(url: str, timeout: float = 30.0, session: Optional[requests.Session] = None) -> FetchedResource:
    """Download *url* and return its body with the reported content type.

    Raises ``AcquisitionError`` for non-HTTP URLs, transport failures and
    non-2xx responses; the HTTP status is kept on the error when known.
    """
    if urlparse(url).scheme not in ("http", "https"):
        raise AcquisitionError(f"Only http(s) URLs can be fetched, got {url!r}")

    http = session or requests
    try:
        response = http.get(
            url,
            headers={"Accept": ACCEPT, "User-Agent": USER_AGENT},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise AcquisitionError(f"Failed to fetch {url}: {e}") from e

    if not response.ok:
        raise AcquisitionError(
            f"Failed to fetch {url}: HTTP {response.status_code}",
            status_code=response.status_code,
        )

    resource = FetchedResource(
        content=response.content,
        content_type=response.headers.get("Content-Type"),
        status_code=response.status_code,
    )
    logger.info(
        "Fetched %s (%d bytes, %s)", url, len(resource.content), resource.content_type or "no content type"
    )
    return resource
