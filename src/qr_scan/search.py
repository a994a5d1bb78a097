"""Recursive quadrant search for a decodable region.

A small code on a busy page often defeats the decoder's locator when the
whole page is presented, yet decodes once it is isolated in a tighter crop.
The search tries the whole buffer first and then descends into disjoint
quadrants, depth first, in a fixed order:

    whole → TL → (TL's quadrants …) → TR → … → BL → … → BR → …

A node is subdivided only while both of its sides are at least ``min_size``
pixels and its depth is below ``max_depth``.  The first attempt that yields a
payload ends the search.  With the defaults a large buffer gets at most
1 + 4 + 16 + 64 = 85 attempts.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from qr_scan.buffer import PixelBuffer, Region

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
DEFAULT_MIN_SIZE = 100

Attempt = Callable[[PixelBuffer], Optional[str]]


@dataclass(frozen=True)
class SearchNode:
    region: Region
    depth: int


def quadrants(region: Region) -> list[Region]:
    """Split *region* into TL, TR, BL, BR.

    Odd widths/heights give the extra row or column to the second half.
    """
    left_w = region.width // 2
    top_h = region.height // 2
    right_w = region.width - left_w
    bottom_h = region.height - top_h
    mid_x = region.x + left_w
    mid_y = region.y + top_h
    return [
        Region(region.x, region.y, left_w, top_h),
        Region(mid_x, region.y, right_w, top_h),
        Region(region.x, mid_y, left_w, bottom_h),
        Region(mid_x, mid_y, right_w, bottom_h),
    ]


def _can_subdivide(node: SearchNode, max_depth: int, min_size: int) -> bool:
    return (
        node.region.width >= min_size
        and node.region.height >= min_size
        and node.depth < max_depth
    )


def _walk(node: SearchNode, max_depth: int, min_size: int) -> Iterator[SearchNode]:
    yield node
    if not _can_subdivide(node, max_depth, min_size):
        return
    for quadrant in quadrants(node.region):
        yield from _walk(SearchNode(quadrant, node.depth + 1), max_depth, min_size)


def search_nodes(
    width: int,
    height: int,
    max_depth: int = DEFAULT_MAX_DEPTH,
    min_size: int = DEFAULT_MIN_SIZE,
) -> Iterator[SearchNode]:
    """Lazily yield every node of the search tree in attempt order.

    *min_size* must be at least 2 so that no quadrant is ever empty.
    """
    if min_size < 2:
        raise ValueError(f"min_size must be at least 2, got {min_size}")
    root = SearchNode(Region(0, 0, width, height), depth=0)
    return _walk(root, max_depth, min_size)


def search(
    buffer: PixelBuffer,
    attempt: Attempt,
    max_depth: int = DEFAULT_MAX_DEPTH,
    min_size: int = DEFAULT_MIN_SIZE,
) -> Optional[str]:
    """Return the first payload *attempt* finds, or ``None`` once the tree is exhausted.

    *attempt* receives a crop and returns a payload or ``None``.  Anything it
    raises is a genuine failure and propagates to the caller.
    """
    attempts = 0
    for node in search_nodes(buffer.width, buffer.height, max_depth, min_size):
        attempts += 1
        payload = attempt(buffer.crop(node.region))
        if payload:
            logger.debug(
                "Decoded at depth %d region %s after %d attempt(s)",
                node.depth, node.region, attempts,
            )
            return payload
        logger.debug("No code at depth %d region %s", node.depth, node.region)
    logger.debug("Search exhausted after %d attempt(s)", attempts)
    return None
