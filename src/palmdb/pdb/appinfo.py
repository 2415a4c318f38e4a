"""
AppInfo and SortInfo Blocks
===========================

Both blocks are optional and their lengths are inferred from the
surrounding offsets (see palmdb.pdb.layout).

Standard AppInfo
----------------
Most built-in Palm applications begin their AppInfo block with the
standard category table:

    Offset  Size    Description
    ------  ----    -----------
    0       2       Renamed categories (bit n = slot n renamed)
    2       256     16 category names, 16 bytes each, NUL padded
    258     16      16 category IDs, one byte each
    274     1       Last unique category ID
    275     1       Padding

Whatever follows the table ("rest") is application specific. It stays
raw unless an APPINFO decoder is registered for the database type.

Databases that do not use the standard layout keep the whole block as a
single payload, again decoded only when a decoder is registered.

SortInfo is always opaque.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Union
import struct

from palmdb.errors import IndexOutOfRangeError, PalmDBError, TruncatedInputError
from palmdb.pdb.blob import Payload, RawPayload, decode_payload
from palmdb.pdb.records import decode_name, encode_name
from palmdb.pdb.registry import BlobKind, DecoderRegistry


CATEGORY_COUNT = 16
CATEGORY_NAME_LENGTH = 16
CATEGORY_TABLE_SIZE = 2 + CATEGORY_COUNT * CATEGORY_NAME_LENGTH + CATEGORY_COUNT + 2


# =============================================================================
# Category Table
# =============================================================================

@dataclass
class Category:
    """One slot of the category table."""
    name: str = ""
    id: int = 0
    renamed: bool = False
    raw_name: bytes = field(default=b"", repr=False, compare=False)


@dataclass
class CategoryTable:
    """
    The 16-slot category table of a standard AppInfo block.

    Slots are addressed by index 0-15; the index is what a record stores
    in the low nibble of its attributes.
    """
    categories: list[Category] = field(
        default_factory=lambda: [Category() for _ in range(CATEGORY_COUNT)]
    )
    last_unique_id: int = 0
    padding: int = 0
    encoding: str = field(default="latin-1", repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.categories) != CATEGORY_COUNT:
            raise ValueError(
                f"Category table needs {CATEGORY_COUNT} slots, got {len(self.categories)}"
            )

    def category(self, value: Union[int, str]) -> Union[str, int, None]:
        """
        Look a category up by index or by name.

        Args:
            value: Slot index (0-15) or category name

        Returns:
            The slot's name when given an index. The first matching
            index when given a name, or None if no slot has that name.

        Raises:
            IndexOutOfRangeError: If an index is outside 0-15

        Example:
            >>> table.category(1)
            'Fuel'
            >>> table.category("Fuel")
            1
        """
        if isinstance(value, str):
            for index, slot in enumerate(self.categories):
                if slot.name == value:
                    return index
            return None

        if not 0 <= value < CATEGORY_COUNT:
            raise IndexOutOfRangeError(value)
        return self.categories[value].name

    def names(self) -> list[str]:
        """Names of all slots, empty slots included."""
        return [slot.name for slot in self.categories]

    def __getitem__(self, index: int) -> Category:
        if not 0 <= index < CATEGORY_COUNT:
            raise IndexOutOfRangeError(index)
        return self.categories[index]

    def __iter__(self) -> Iterator[Category]:
        return iter(self.categories)

    def __len__(self) -> int:
        return CATEGORY_COUNT

    def to_bytes(self) -> bytes:
        """Serialize the table to 276 bytes."""
        renamed = 0
        for index, slot in enumerate(self.categories):
            if slot.renamed:
                renamed |= 1 << index

        result = bytearray(struct.pack(">H", renamed))
        for slot in self.categories:
            result.extend(encode_name(slot.name, self.encoding, CATEGORY_NAME_LENGTH, slot.raw_name))
        result.extend(slot.id & 0xFF for slot in self.categories)
        result.append(self.last_unique_id & 0xFF)
        result.append(self.padding & 0xFF)
        return bytes(result)

    @classmethod
    def from_bytes(cls, data: bytes, encoding: str = "latin-1", offset: int = 0) -> "CategoryTable":
        """
        Parse a table from the start of ``data``.

        Raises:
            TruncatedInputError: If ``data`` is shorter than 276 bytes
            InvalidNameError: If a category name does not decode
        """
        if len(data) < CATEGORY_TABLE_SIZE:
            raise TruncatedInputError("category table", offset, CATEGORY_TABLE_SIZE, len(data))

        renamed = struct.unpack(">H", data[0:2])[0]
        ids_start = 2 + CATEGORY_COUNT * CATEGORY_NAME_LENGTH

        categories = []
        for index in range(CATEGORY_COUNT):
            start = 2 + index * CATEGORY_NAME_LENGTH
            raw_name = data[start:start + CATEGORY_NAME_LENGTH]
            categories.append(Category(
                name=decode_name(raw_name, encoding, f"category {index}", offset + start),
                id=data[ids_start + index],
                renamed=bool(renamed & (1 << index)),
                raw_name=raw_name,
            ))

        return cls(
            categories=categories,
            last_unique_id=data[ids_start + CATEGORY_COUNT],
            padding=data[ids_start + CATEGORY_COUNT + 1],
            encoding=encoding,
        )


# =============================================================================
# AppInfo Block
# =============================================================================

class AppInfo:
    """
    The AppInfo block.

    Attributes:
        categories: The category table, or None for non-standard blocks
        payload: The rest of the block (after the table, if any)
    """

    def __init__(
        self,
        categories: Optional[CategoryTable] = None,
        payload: Optional[Payload] = None,
    ) -> None:
        self.categories = categories
        self.payload = payload if payload is not None else RawPayload(b"")

    @property
    def is_standard(self) -> bool:
        """True if the block starts with a category table."""
        return self.categories is not None

    def category(self, value: Union[int, str]) -> Union[str, int, None]:
        """
        Look a category up by index or name (see CategoryTable.category).

        Raises:
            PalmDBError: If the block has no category table
        """
        if self.categories is None:
            raise PalmDBError("AppInfo block has no category table")
        return self.categories.category(value)

    @property
    def rest(self) -> bytes:
        """Encoded bytes following the category table."""
        return self.payload.to_bytes()

    def to_bytes(self) -> bytes:
        """Serialize the whole block."""
        head = self.categories.to_bytes() if self.categories is not None else b""
        return head + self.payload.to_bytes()

    def get_size(self) -> int:
        return len(self.to_bytes())

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        standard: bool = False,
        registry: Optional[DecoderRegistry] = None,
        type_id: Optional[str] = None,
        offset: int = 0,
        encoding: str = "latin-1",
    ) -> "AppInfo":
        """
        Parse an AppInfo block.

        Args:
            data: The block bytes
            standard: Whether the block starts with a category table
            registry: Registry to look up an APPINFO decoder in
            type_id: Database type identifier for the lookup
            offset: Absolute offset of the block, for error reporting
            encoding: Text encoding of category names

        Raises:
            TruncatedInputError: If a standard block is too short for the table
            DecoderParseError: If a registered decoder fails
        """
        categories = None
        rest_offset = offset
        if standard:
            categories = CategoryTable.from_bytes(data, encoding, offset)
            data = data[CATEGORY_TABLE_SIZE:]
            rest_offset += CATEGORY_TABLE_SIZE

        payload = decode_payload(registry, type_id, BlobKind.APPINFO, data, "appinfo", rest_offset)
        return cls(categories=categories, payload=payload)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppInfo):
            return NotImplemented
        return self.categories == other.categories and self.rest == other.rest

    __hash__ = None

    def __repr__(self) -> str:
        kind = "standard" if self.is_standard else "opaque"
        return f"AppInfo({kind}, {self.get_size()} bytes)"


# =============================================================================
# SortInfo Block
# =============================================================================

@dataclass
class SortInfo:
    """The SortInfo block, kept as opaque bytes."""
    data: bytes = b""

    def to_bytes(self) -> bytes:
        return self.data

    def get_size(self) -> int:
        return len(self.data)
