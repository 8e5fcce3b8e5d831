"""
S3-style hierarchical listing over an insertion-ordered key space.

Keys are opaque byte strings treated as paths. Given every (key, state) pair
stored in a machine, in insertion order, ``list_objects`` groups keys that
contain the delimiter after the prefix into common prefixes and returns the
rest as objects.
"""
import logging
from typing import Iterable, List, Optional, Set

from .models import ListingQuery, ListingResult, ObjectEntry

logger = logging.getLogger(__name__)


def _to_str(value: bytes) -> str:
    return value.decode("utf-8", errors="surrogateescape")


def list_objects(entries: Iterable[ObjectEntry], query: Optional[ListingQuery] = None) -> ListingResult:
    """
    Apply prefix, delimiter, offset and limit to a listing.

    Args:
        entries: Every stored entry, in insertion order
        query: Listing parameters (defaults: no prefix, "/" delimiter)

    Returns:
        Objects in insertion order and deduplicated common prefixes in
        first-occurrence order. ``offset`` skips leading candidates of either
        kind in source order; ``limit`` caps objects only. An offset past the
        end of the candidates yields an empty result.
    """
    query = query or ListingQuery()
    prefix = query.prefix_bytes
    delimiter = query.delimiter_bytes

    objects: List[ObjectEntry] = []
    common_prefixes: List[str] = []
    seen: Set[bytes] = set()
    skipped = 0

    for entry in entries:
        key = entry.key
        if not key.startswith(prefix):
            continue

        if skipped < query.offset:
            skipped += 1
            continue

        position = key.find(delimiter, len(prefix)) if delimiter else -1
        if position >= 0:
            group = key[:position + len(delimiter)]
            if group not in seen:
                seen.add(group)
                common_prefixes.append(_to_str(group))
            continue

        # Keep scanning past the cap so every common prefix is reported
        if len(objects) < query.limit:
            objects.append(entry)

    logger.debug(
        f"Listed {len(objects)} objects and {len(common_prefixes)} common prefixes "
        f"(prefix={query.prefix!r}, offset={query.offset}, limit={query.limit})"
    )
    return ListingResult(objects=objects, common_prefixes=common_prefixes)
