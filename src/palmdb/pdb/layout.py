"""
Block and Blob Extent Inference
===============================

A Palm database stores where each region starts but never how long it
is. This module derives every length from the offset of whatever comes
next in the file.

Valid Layouts
-------------
With ``next`` being the offset of the first data blob (after sorting the
index by offset):

    AppInfo   SortInfo   AppInfo length      SortInfo length
    -------   --------   --------------      ---------------
    > 0       > 0        sort - app          next - sort
    > 0       0          next - app          (absent)
    0         > 0        (absent)            next - sort
    0         0          (absent)            (absent)

An empty index has no first blob. In that case ``next`` is the end of
the file, so a database holding only an AppInfo block still loads.

Any negative length means the offsets are out of order and the file is
rejected with InvalidLayoutError.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence
import logging
import warnings

from palmdb.errors import DuplicateOffsetWarning, InvalidLayoutError
from palmdb.pdb.records import DatabaseHeader, IndexEntry

# Logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Extent:
    """A byte range inside the file."""
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class BlockLayout:
    """
    Inferred extents of the optional AppInfo and SortInfo blocks.

    Attributes:
        appinfo: Extent of the AppInfo block, or None if absent
        sortinfo: Extent of the SortInfo block, or None if absent
    """
    appinfo: Optional[Extent] = None
    sortinfo: Optional[Extent] = None


# =============================================================================
# Index Ordering
# =============================================================================

def sort_index(entries: Sequence[IndexEntry]) -> list[IndexEntry]:
    """
    Return the entries stable-sorted by offset.

    Entries sharing an offset keep their on-disk order. Shared offsets
    are reported through logging and DuplicateOffsetWarning but do not
    stop the load.
    """
    counts = Counter(entry.offset for entry in entries)
    duplicates = sorted(offset for offset, count in counts.items() if count > 1)
    if duplicates:
        message = f"Index has entries sharing offsets: {', '.join(str(o) for o in duplicates)}"
        logger.warning(message)
        warnings.warn(message, DuplicateOffsetWarning, stacklevel=2)

    return sorted(entries, key=lambda entry: entry.offset)


# =============================================================================
# Block Inference
# =============================================================================

def infer_block_layout(
    header: DatabaseHeader,
    sorted_entries: Sequence[IndexEntry],
    end_of_data: int,
) -> BlockLayout:
    """
    Work out where the AppInfo and SortInfo blocks start and end.

    Args:
        header: The parsed database header
        sorted_entries: Index entries sorted by offset
        end_of_data: Total size of the file, used when the index is empty

    Returns:
        The inferred BlockLayout

    Raises:
        InvalidLayoutError: If any inferred length is negative
    """
    next_offset = sorted_entries[0].offset if sorted_entries else end_of_data
    app = header.appinfo_offset
    sort = header.sortinfo_offset

    appinfo = None
    sortinfo = None

    if app > 0 and sort > 0:
        appinfo = _extent("AppInfo", app, sort)
        sortinfo = _extent("SortInfo", sort, next_offset)
    elif app > 0:
        appinfo = _extent("AppInfo", app, next_offset)
    elif sort > 0:
        sortinfo = _extent("SortInfo", sort, next_offset)

    logger.debug(f"Block layout: appinfo={appinfo}, sortinfo={sortinfo}")
    return BlockLayout(appinfo=appinfo, sortinfo=sortinfo)


def _extent(what: str, start: int, end: int) -> Extent:
    """Build an extent, rejecting negative lengths."""
    if end < start:
        raise InvalidLayoutError(
            f"{what} block at offset {start} would end at {end} "
            f"(length {end - start})"
        )
    return Extent(offset=start, length=end - start)


# =============================================================================
# Blob Inference
# =============================================================================

def iter_blob_extents(
    sorted_entries: Sequence[IndexEntry],
    end_of_data: int,
) -> Iterator[tuple[IndexEntry, Extent]]:
    """
    Yield each entry with the extent of its data.

    Each blob runs up to the next entry's offset; the last one runs to
    the end of the file.

    Raises:
        InvalidLayoutError: If an entry points past the end of the file
    """
    for i, entry in enumerate(sorted_entries):
        if i + 1 < len(sorted_entries):
            end = sorted_entries[i + 1].offset
        else:
            end = end_of_data

        if end < entry.offset:
            raise InvalidLayoutError(
                f"Entry {entry.key!r} at offset {entry.offset} runs past "
                f"the next boundary at {end}"
            )
        yield entry, Extent(offset=entry.offset, length=end - entry.offset)
