"""User-facing guidance shown for each decode outcome."""

SUCCESS = "QR code scanned successfully."

NO_CODE_FOUND = """\
No QR code found in the document. Please check that:
  1. The document actually contains a QR code
  2. The QR code is clearly visible and not cropped
  3. The scan or photo is sharp and well lit
  4. For PDFs, try exporting at a higher resolution before scanning\
"""

ACQUISITION_FAILED = """\
The document could not be read. This might be due to:
  1. A corrupt, empty, or password-protected file
  2. An unsupported file type (PDF, PNG, JPEG, WebP, GIF, BMP, TIFF are supported)
  3. A URL that is unreachable or does not point to a document or image\
"""

DECODER_FAULT = """\
Something went wrong while decoding the image. Please try again; \
if it keeps happening, try a different file or decoder (--decoder).\
"""
