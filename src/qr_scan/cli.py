"""Main CLI entry point."""

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from qr_scan.config import (
    DecoderKind,
    EnhancementConfig,
    ScanSettings,
    ThresholdConfig,
    ThresholdMode,
)
from qr_scan.postprocessing import is_link
from qr_scan.scanner import UrlSource, build_decoder, decode_document, decode_file

console = Console(stderr=True)
load_dotenv()

URL_SCHEMES = ("http://", "https://")


@click.command()
@click.argument("source")
@click.option(
    "--decoder", "-d",
    type=click.Choice([k.value for k in DecoderKind], case_sensitive=False),
    default=None,
    help="Barcode decoder to use.  [default: zxing, or QR_SCAN_DECODER]",
)
@click.option(
    "--scale",
    type=click.FloatRange(1.0, 8.0),
    default=None,
    help="PDF render scale (1.0 = 72 DPI). Higher finds smaller codes but is slower.  [default: 8.0]",
)
@click.option(
    "--max-pages",
    type=click.IntRange(min=1),
    default=None,
    help="Only search the first N pages of a PDF.  [default: all]",
)
@click.option(
    "--barcode-format", "-b", "barcode_formats",
    multiple=True,
    help=(
        "zxing-cpp symbology to accept; repeatable (QRCode, MicroQRCode, DataMatrix, Aztec, ...).  "
        "[default: QRCode, or QR_SCAN_FORMATS]"
    ),
)
@click.option(
    "--threshold",
    type=click.Choice(["adaptive", "fixed", "none"], case_sensitive=False),
    default="adaptive",
    show_default=True,
    help="Binarisation applied before decoding.",
)
@click.option(
    "--rescan/--no-rescan",
    default=False,
    show_default=True,
    help="Retry each region at progressively smaller scales.",
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path. Defaults to stdout.",
)
@click.option(
    "--format", "-f", "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--open", "open_link",
    is_flag=True,
    help="Open the payload in a browser when it is a web link.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every decode attempt.")
@click.version_option()
def main(
    source, decoder, scale, max_pages, barcode_formats, threshold, rescan, output, output_format, open_link, verbose
):
    """Find and decode the QR code in a PDF, an image, or a URL.

    SOURCE is a path to a .pdf, .png, .jpg, .jpeg, .webp, .gif, .bmp or .tiff
    file, or an http(s) URL pointing at one.  The payload is written to
    stdout unless --output is specified.
    """
    _configure_logging(verbose)

    try:
        settings = ScanSettings.from_env(
            decoder_override=DecoderKind(decoder.lower()) if decoder else None,
            scale_override=scale,
            max_pages_override=max_pages,
            formats_override=barcode_formats or None,
            enhancement=_enhancement_config(threshold, rescan),
        )
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    is_url = source.lower().startswith(URL_SCHEMES)
    if not is_url and not Path(source).is_file():
        console.print(f"[red]Error:[/red] No such file: {source}")
        sys.exit(1)

    try:
        decoder_obj = build_decoder(settings.decoder, settings.formats)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    with console.status(f"[cyan]Scanning {source} with {settings.decoder.value}..."):
        if is_url:
            outcome = decode_document(UrlSource(source), decoder=decoder_obj, settings=settings)
        else:
            outcome = decode_file(Path(source), decoder=decoder_obj, settings=settings)

    if not outcome.ok:
        console.print(f"[red]Error:[/red] {outcome.message}")
        if outcome.error is not None:
            console.print(f"[dim]{outcome.error}[/dim]")
        sys.exit(1)

    console.print(f"[green]{outcome.message}[/green]")

    if output_format == "json":
        result = json.dumps(
            {"payload": outcome.payload, "page": outcome.page, "link": is_link(outcome.payload)},
            ensure_ascii=False,
        )
    else:
        result = outcome.payload

    if output:
        output.write_text(result, encoding="utf-8")
        console.print(f"[green]Written to {output}[/green]")
    else:
        click.echo(result)

    if open_link:
        if is_link(outcome.payload):
            click.launch(outcome.payload)
        else:
            console.print("[yellow]The scanned code does not contain a web link.[/yellow]")


def _enhancement_config(threshold: str, rescan: bool) -> EnhancementConfig:
    if threshold == "none":
        threshold_config = None
    else:
        threshold_config = ThresholdConfig(mode=ThresholdMode(threshold.lower()))
    return EnhancementConfig(threshold=threshold_config, rescan=rescan)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    logging.getLogger("qr_scan").setLevel(logging.DEBUG if verbose else logging.WARNING)
