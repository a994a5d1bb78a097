"""OpenCV QR decoder (``cv2.QRCodeDetector``)."""

import cv2
import numpy as np

from qr_scan.decoders.base import BaseDecoder
from qr_scan.errors import DecoderFault, NoPayloadFound


class OpenCVDecoder(BaseDecoder):
    name = "opencv"

    def __init__(self) -> None:
        self.detector = cv2.QRCodeDetector()

    def decode(self, image_bytes: bytes) -> str:
        image = cv2.imdecode(np.frombuffer(image_bytes, np.uint8), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise DecoderFault("OpenCV could not read the encoded image")

        text, _points, _ = self.detector.detectAndDecode(image)
        if not text:
            raise NoPayloadFound("OpenCV found no QR code")
        return text
