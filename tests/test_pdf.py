"""Tests for qr_scan.pdf — open_pdf(), render_page() and iter_pages()."""

from unittest.mock import patch

import numpy as np
import pytest

from qr_scan import pdf
from qr_scan.buffer import PixelBuffer
from qr_scan.errors import AcquisitionError
from qr_scan.pdf import is_pdf, iter_pages, open_pdf, render_page

A4_POINTS = (595, 842)


class TestOpenPdf:
    def test_opens_valid_document(self, three_page_pdf_bytes):
        doc = open_pdf(three_page_pdf_bytes)
        try:
            assert doc.page_count == 3
        finally:
            doc.close()

    def test_empty_bytes(self):
        with pytest.raises(AcquisitionError, match="empty"):
            open_pdf(b"")

    def test_garbage_bytes(self):
        with pytest.raises(AcquisitionError):
            open_pdf(b"this is not a pdf at all")

    def test_encrypted_document(self, encrypted_pdf_bytes):
        with pytest.raises(AcquisitionError, match="encrypted"):
            open_pdf(encrypted_pdf_bytes)


class TestRenderPage:
    # ── Dimensions ────────────────────────────────────────────────────────

    def test_scale_one_is_72_dpi(self, single_page_pdf_bytes):
        doc = open_pdf(single_page_pdf_bytes)
        try:
            page = render_page(doc, 0, scale=1.0)
        finally:
            doc.close()
        assert isinstance(page, PixelBuffer)
        assert (page.width, page.height) == A4_POINTS

    def test_scale_two_doubles_each_side(self, single_page_pdf_bytes):
        doc = open_pdf(single_page_pdf_bytes)
        try:
            page = render_page(doc, 0, scale=2.0)
        finally:
            doc.close()
        assert (page.width, page.height) == (A4_POINTS[0] * 2, A4_POINTS[1] * 2)

    # ── Content ───────────────────────────────────────────────────────────

    def test_background_is_opaque_white(self, single_page_pdf_bytes):
        doc = open_pdf(single_page_pdf_bytes)
        try:
            array = render_page(doc, 0, scale=1.0).to_array()
        finally:
            doc.close()
        assert (array[800, 500] == 255).all()
        assert (array[..., 3] == 255).all()

    def test_filled_rect_renders_black(self, code_on_page_two_pdf_bytes):
        doc = open_pdf(code_on_page_two_pdf_bytes)
        try:
            array = render_page(doc, 1, scale=1.0).to_array()
        finally:
            doc.close()
        assert (array[400, 300, :3] == 0).all()
        assert np.mean(array[..., :3] < 128) > 0.5

    # ── Validation ────────────────────────────────────────────────────────

    @pytest.mark.parametrize("index", [-1, 3])
    def test_page_out_of_range(self, three_page_pdf_bytes, index):
        doc = open_pdf(three_page_pdf_bytes)
        try:
            with pytest.raises(AcquisitionError, match="out of range"):
                render_page(doc, index, scale=1.0)
        finally:
            doc.close()

    @pytest.mark.parametrize("scale", [0.5, 9.0])
    def test_scale_out_of_range(self, single_page_pdf_bytes, scale):
        doc = open_pdf(single_page_pdf_bytes)
        try:
            with pytest.raises(ValueError, match="scale"):
                render_page(doc, 0, scale=scale)
        finally:
            doc.close()

    def test_pixel_limit(self, single_page_pdf_bytes):
        doc = open_pdf(single_page_pdf_bytes)
        try:
            with pytest.raises(AcquisitionError, match="pixel limit"):
                render_page(doc, 0, scale=1.0, max_pixels=500_000)
        finally:
            doc.close()


class TestIterPages:
    def test_yields_every_page_in_order(self, code_on_page_two_pdf_bytes):
        pages = list(iter_pages(code_on_page_two_pdf_bytes, scale=1.0))
        assert len(pages) == 2
        assert (pages[0].to_array()[400, 300, :3] == 255).all()
        assert (pages[1].to_array()[400, 300, :3] == 0).all()

    def test_max_pages_caps_the_count(self, three_page_pdf_bytes):
        assert len(list(iter_pages(three_page_pdf_bytes, scale=1.0, max_pages=2))) == 2

    def test_max_pages_above_page_count(self, three_page_pdf_bytes):
        assert len(list(iter_pages(three_page_pdf_bytes, scale=1.0, max_pages=10))) == 3

    def test_pages_rendered_on_demand(self, three_page_pdf_bytes):
        with patch("qr_scan.pdf.render_page", wraps=pdf.render_page) as render:
            pages = iter_pages(three_page_pdf_bytes, scale=1.0)
            assert render.call_count == 0
            next(pages)
            assert render.call_count == 1
            pages.close()

    def test_invalid_pdf_raises_on_first_page(self):
        pages = iter_pages(b"%PDF-1.7 truncated", scale=1.0)
        with pytest.raises(AcquisitionError):
            next(pages)


class TestIsPdf:
    def test_real_pdf(self, single_page_pdf_bytes):
        assert is_pdf(single_page_pdf_bytes)

    def test_leading_whitespace_tolerated(self):
        assert is_pdf(b"\n  %PDF-1.4\n")

    def test_png_is_not_pdf(self, blank_png_bytes):
        assert not is_pdf(blank_png_bytes)

    def test_empty(self):
        assert not is_pdf(b"")
