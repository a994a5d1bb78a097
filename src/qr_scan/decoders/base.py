"""Abstract base for barcode decoders."""

from abc import ABC, abstractmethod
from typing import Optional

from qr_scan.errors import NoPayloadFound


class BaseDecoder(ABC):
    """A single decoder handle.

    Handles are not safe for concurrent use; each decode request owns its own.
    """

    name = "base"

    @abstractmethod
    def decode(self, image_bytes: bytes) -> str:
        """Decode encoded image bytes (PNG/JPEG) and return the payload.

        Raises ``NoPayloadFound`` when the image holds no readable code.
        """
        ...

    def try_decode(self, image_bytes: bytes) -> Optional[str]:
        """Like ``decode`` but returns ``None`` instead of raising ``NoPayloadFound``."""
        try:
            return self.decode(image_bytes)
        except NoPayloadFound:
            return None
