"""Post-processing for decoded payloads.

Decoders hand back the raw text stored in the symbol.  Invoice codes are
frequently produced by tools that prepend a byte-order mark, pad with
whitespace, or use Windows line endings; those are normalised away here so
that callers can compare and route payloads reliably.
"""

from urllib.parse import urlparse

BOM = "\ufeff"


def normalize_payload(text: str) -> str:
    """Strip a leading BOM and surrounding whitespace, and unify line endings."""
    text = text.lstrip(BOM)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def is_link(payload: str) -> bool:
    """True when *payload* is an absolute http(s) URL that can be opened."""
    parsed = urlparse(payload.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
