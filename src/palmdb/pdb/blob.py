"""
Data Blobs
==========

A DataBlob is the payload of one record or resource, together with the
index entry that locates it.

Payloads
--------
Every payload is exactly one of:

- **RawPayload**: the bytes as found in the file
- **DecodedPayload**: a structured view produced by a registered decoder

A raw payload is written back byte for byte. A decoded payload is
re-encoded with the view's ``to_bytes()``.

The blob keeps a weak reference to its database. It is only used to
look up category names and never keeps the database alive.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union
import logging
import weakref

from palmdb.errors import (
    CategoryNotFoundError,
    DecoderParseError,
    IndexOutOfRangeError,
    PalmDBError,
)
from palmdb.pdb.records import IndexEntry, RecordEntry
from palmdb.pdb.registry import BlobKind, DecoderRegistry

if TYPE_CHECKING:
    from palmdb.pdb.database import PalmDatabase

# Logger for this module
logger = logging.getLogger(__name__)


# =============================================================================
# Payload Variants
# =============================================================================

@dataclass(frozen=True)
class RawPayload:
    """Undecoded bytes."""
    data: bytes

    def to_bytes(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class DecodedPayload:
    """A structured view produced by a registered decoder."""
    view: Any

    def to_bytes(self) -> bytes:
        return bytes(self.view.to_bytes())


Payload = Union[RawPayload, DecodedPayload]


def decode_payload(
    registry: Optional[DecoderRegistry],
    type_id: Optional[str],
    kind: BlobKind,
    data: bytes,
    key: Any,
    offset: int,
) -> Payload:
    """
    Turn bytes into a payload, decoding them if a decoder is registered.

    Args:
        registry: Where to look for a decoder (None disables decoding)
        type_id: Database type identifier
        kind: Which kind of blob the bytes are
        data: The bytes to decode
        key: Blob key, for error reporting
        offset: Absolute offset of ``data`` in the file, for error reporting

    Returns:
        DecodedPayload if a decoder exists, RawPayload otherwise

    Raises:
        DecoderParseError: If the decoder exists but fails
    """
    decoder = registry.lookup(type_id, kind) if registry is not None else None
    if decoder is None:
        return RawPayload(data)

    try:
        view = decoder.from_bytes(data)
    except DecoderParseError:
        raise
    except Exception as e:
        raise DecoderParseError(key, offset, len(data), str(e)) from e

    logger.debug(f"Decoded {key!r} with {decoder.__name__}")
    return DecodedPayload(view)


# =============================================================================
# Data Blob
# =============================================================================

class DataBlob:
    """
    One record or resource.

    Attributes:
        entry: The index entry describing this blob
        payload: RawPayload or DecodedPayload

    Example:
        >>> blob = db[0x6F0001]
        >>> blob.data[:4]
        b'\\x00\\x01\\x02\\x03'
        >>> blob.category
        'Unfiled'
    """

    def __init__(
        self,
        entry: IndexEntry,
        payload: Payload,
        database: Optional["PalmDatabase"] = None,
    ) -> None:
        self.entry = entry
        self.payload = payload
        self._database = weakref.ref(database) if database is not None else None

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def database(self) -> Optional["PalmDatabase"]:
        """The owning database, if it is still alive."""
        return self._database() if self._database is not None else None

    @property
    def key(self) -> Any:
        return self.entry.key

    @property
    def is_record(self) -> bool:
        return isinstance(self.entry, RecordEntry)

    # =========================================================================
    # Payload Access
    # =========================================================================

    @property
    def is_decoded(self) -> bool:
        return isinstance(self.payload, DecodedPayload)

    @property
    def view(self) -> Optional[Any]:
        """The structured view, or None for a raw blob."""
        if isinstance(self.payload, DecodedPayload):
            return self.payload.view
        return None

    @view.setter
    def view(self, value: Any) -> None:
        self.payload = DecodedPayload(value)

    @property
    def data(self) -> bytes:
        """The encoded bytes of this blob."""
        return self.payload.to_bytes()

    @data.setter
    def data(self, value: bytes) -> None:
        self.payload = RawPayload(bytes(value))

    def to_bytes(self) -> bytes:
        """Serialize the blob as it will appear in the file."""
        return self.payload.to_bytes()

    def get_size(self) -> int:
        """Size of the serialized blob in bytes."""
        return len(self.to_bytes())

    # =========================================================================
    # Categories
    # =========================================================================

    @property
    def category(self) -> Optional[str]:
        """
        Name of this record's category.

        Returns None when the owning database has no category table.
        """
        entry = self._record_entry()
        table = self._category_table()
        if table is None:
            return None
        return table.category(entry.category)

    @category.setter
    def category(self, value: Union[str, int]) -> None:
        entry = self._record_entry()
        table = self._category_table()

        if isinstance(value, str):
            index = table.category(value) if table is not None else None
            if index is None:
                raise CategoryNotFoundError(value)
        else:
            index = int(value)
            if not 0 <= index < 16:
                raise IndexOutOfRangeError(index)

        entry.category = index

    def _record_entry(self) -> RecordEntry:
        if not isinstance(self.entry, RecordEntry):
            raise PalmDBError(f"resource {self.key!r} has no category")
        return self.entry

    def _category_table(self):
        database = self.database
        if database is None or database.appinfo is None:
            return None
        return database.appinfo.categories

    # =========================================================================
    # Comparison
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataBlob):
            return NotImplemented
        return self.entry == other.entry and self.to_bytes() == other.to_bytes()

    __hash__ = None

    def __repr__(self) -> str:
        kind = "decoded" if self.is_decoded else "raw"
        return f"DataBlob(key={self.key!r}, {kind}, {self.get_size()} bytes)"
