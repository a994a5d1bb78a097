"""Exception types shared across the scan pipeline."""

from typing import Optional


class ScanError(Exception):
    """Base class for failures that end a decode request."""


class AcquisitionError(ScanError):
    """The source could not be turned into a pixel buffer.

    Covers corrupt, encrypted or oversized PDFs, unreachable URLs, unsupported
    content types and empty uploads. ``status_code`` is set when the failure
    came from an HTTP response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecoderFault(ScanError):
    """Enhancement or the decoder itself broke, as opposed to finding nothing."""


class NoPayloadFound(Exception):
    """Raised by a decoder when the image holds no readable code.

    This is the expected negative result of a single decode attempt and is
    never reported to the user on its own.
    """
