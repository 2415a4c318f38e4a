"""
PDB Header and Index Entry Definitions
======================================

This module defines the fixed-size structures at the start of a Palm
database file: the 78-byte database header and the index entries that
follow it.

File Structure Overview
-----------------------
A PDB (record database) or PRC (resource database) file contains:
1. Database Header (78 bytes)
2. Index: N entries, all of the same kind
   - Record entries (8 bytes) in a PDB
   - Resource entries (10 bytes) in a PRC
3. Optional AppInfo block
4. Optional SortInfo block
5. Data blobs, one per index entry

No lengths are stored anywhere. Every block and blob ends where the next
one begins (see palmdb.pdb.layout).

Header Layout
-------------
    Offset  Size    Description
    ------  ----    -----------
    0       32      Database name (NUL padded)
    32      2       Attributes (bit 0 = resource database)
    34      2       Version
    36      4       Creation time (Palm epoch seconds)
    40      4       Modification time
    44      4       Last backup time
    48      4       Modification number
    52      4       AppInfo offset (0 = none)
    56      4       SortInfo offset (0 = none)
    60      4       Database type (four-character code)
    64      4       Creator (four-character code)
    68      4       Unique ID seed
    72      4       Next record list ID
    76      2       Number of index entries

All integers are big-endian.

Reference
---------
- Palm File Format Specification (Palm Inc., 2001)
"""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import BinaryIO, ClassVar, Union
import struct

from palmdb.errors import InvalidNameError, TruncatedInputError


# Size of the fixed database header. The offset planner starts here.
HEADER_SIZE = 78

# Size of the NUL-padded database name field
NAME_FIELD_SIZE = 32

_HEADER_FORMAT = ">32sHHIIIIII4s4sIIH"


# =============================================================================
# Attribute Flags
# =============================================================================

class DatabaseAttributes(IntFlag):
    """
    Database header attribute bits (dmHdrAttr*).

    Only RESOURCE affects the file layout: it selects the index entry
    variant. The rest are carried through untouched.
    """
    RESOURCE = 0x0001
    READ_ONLY = 0x0002
    APPINFO_DIRTY = 0x0004
    BACKUP = 0x0008
    OK_TO_INSTALL_NEWER = 0x0010
    RESET_AFTER_INSTALL = 0x0020
    COPY_PREVENTION = 0x0040
    STREAM = 0x0080
    HIDDEN = 0x0100
    LAUNCHABLE_DATA = 0x0200
    RECYCLABLE = 0x0400
    BUNDLE = 0x0800
    OPEN = 0x8000


class RecordAttributes(IntFlag):
    """
    Record index entry attribute bits (dmRecAttr*).

    The low nibble is not a flag but the record's category index.
    """
    DELETE = 0x80
    DIRTY = 0x40
    BUSY = 0x20
    SECRET = 0x10

    CATEGORY_MASK = 0x0F


# =============================================================================
# Code Helpers
# =============================================================================

def decode_code(raw: bytes) -> str:
    """Decode a four-character code. NULs are kept so codes round-trip."""
    return raw.decode("latin-1")


def encode_code(code: str) -> bytes:
    """Encode a four-character code, padding short codes with NULs."""
    return code.encode("latin-1")[:4].ljust(4, b"\x00")


def encode_name(name: str, encoding: str, size: int, raw: bytes = b"") -> bytes:
    """
    Encode a NUL-terminated name into a ``size``-byte field.

    Long names are cut by whole characters so a multibyte sequence is
    never split. If ``raw`` is the field the name was read from and the
    name is unchanged, ``raw`` is written back as is, even when it has
    no terminator.
    """
    if raw and raw.split(b"\x00", 1)[0].decode(encoding, "replace") == name:
        return raw

    encoded = name.encode(encoding)
    while len(encoded) > size - 1:
        name = name[:-1]
        encoded = name.encode(encoding)
    return encoded.ljust(size, b"\x00")


def decode_name(raw: bytes, encoding: str, what: str, offset: int) -> str:
    """
    Decode a name field up to its first NUL.

    Raises:
        InvalidNameError: If the bytes are not valid in ``encoding``
    """
    try:
        return raw.split(b"\x00", 1)[0].decode(encoding)
    except UnicodeDecodeError as e:
        raise InvalidNameError(what, offset, str(e)) from e


def read_exact(stream: BinaryIO, offset: int, size: int, what: str) -> bytes:
    """
    Read exactly ``size`` bytes at ``offset``.

    Raises:
        TruncatedInputError: If the stream ends first
    """
    stream.seek(offset)
    data = stream.read(size)
    if len(data) < size:
        raise TruncatedInputError(what, offset, size, len(data))
    return data


# =============================================================================
# Database Header
# =============================================================================

@dataclass
class DatabaseHeader:
    """
    The 78-byte database header.

    Time fields hold raw Palm epoch seconds; PalmDatabase exposes them
    as datetimes. Offsets and record_count are rewritten by
    PalmDatabase.recompute_offsets() before every dump. ``raw_name``
    keeps the 32-byte name field as read, so an unchanged name is
    written back byte for byte.
    """
    name: str = ""
    attributes: int = 0
    version: int = 0
    creation_time: int = 0
    modification_time: int = 0
    backup_time: int = 0
    modification_number: int = 0
    appinfo_offset: int = 0
    sortinfo_offset: int = 0
    db_type: str = "DATA"
    creator: str = "    "
    unique_id_seed: int = 0
    next_record_list_id: int = 0
    record_count: int = 0
    encoding: str = field(default="latin-1", repr=False, compare=False)
    raw_name: bytes = field(default=b"", repr=False, compare=False)

    @property
    def is_resource_db(self) -> bool:
        """True if the index holds resource entries."""
        return bool(self.attributes & DatabaseAttributes.RESOURCE)

    @is_resource_db.setter
    def is_resource_db(self, value: bool) -> None:
        if value:
            self.attributes |= DatabaseAttributes.RESOURCE
        else:
            self.attributes &= 0xFFFF ^ DatabaseAttributes.RESOURCE

    @property
    def entry_size(self) -> int:
        """On-disk size of one index entry for this database kind."""
        return ResourceEntry.ENTRY_SIZE if self.is_resource_db else RecordEntry.ENTRY_SIZE

    def to_bytes(self) -> bytes:
        """Serialize the header to 78 bytes."""
        name_bytes = encode_name(self.name, self.encoding, NAME_FIELD_SIZE, self.raw_name)

        return struct.pack(
            _HEADER_FORMAT,
            name_bytes,
            self.attributes,
            self.version,
            self.creation_time,
            self.modification_time,
            self.backup_time,
            self.modification_number,
            self.appinfo_offset,
            self.sortinfo_offset,
            encode_code(self.db_type),
            encode_code(self.creator),
            self.unique_id_seed,
            self.next_record_list_id,
            self.record_count,
        )

    @classmethod
    def from_bytes(cls, data: bytes, encoding: str = "latin-1") -> "DatabaseHeader":
        """
        Deserialize a header.

        Raises:
            TruncatedInputError: If fewer than 78 bytes are given
            InvalidNameError: If the name does not decode
        """
        if len(data) < HEADER_SIZE:
            raise TruncatedInputError("database header", 0, HEADER_SIZE, len(data))

        (
            raw_name,
            attributes,
            version,
            creation_time,
            modification_time,
            backup_time,
            modification_number,
            appinfo_offset,
            sortinfo_offset,
            db_type,
            creator,
            unique_id_seed,
            next_record_list_id,
            record_count,
        ) = struct.unpack(_HEADER_FORMAT, data[:HEADER_SIZE])

        return cls(
            name=decode_name(raw_name, encoding, "database name", 0),
            attributes=attributes,
            version=version,
            creation_time=creation_time,
            modification_time=modification_time,
            backup_time=backup_time,
            modification_number=modification_number,
            appinfo_offset=appinfo_offset,
            sortinfo_offset=sortinfo_offset,
            db_type=decode_code(db_type),
            creator=decode_code(creator),
            unique_id_seed=unique_id_seed,
            next_record_list_id=next_record_list_id,
            record_count=record_count,
            encoding=encoding,
            raw_name=raw_name,
        )

    @classmethod
    def read(cls, stream: BinaryIO, encoding: str = "latin-1") -> "DatabaseHeader":
        """Read the header from the start of a stream."""
        return cls.from_bytes(read_exact(stream, 0, HEADER_SIZE, "database header"), encoding)


# =============================================================================
# Index Entries
# =============================================================================

@dataclass
class RecordEntry:
    """
    Record index entry (8 bytes).

    Structure:
        Offset  Size    Description
        ------  ----    -----------
        0       4       Offset of the record data
        4       1       Attributes (flags + category nibble)
        5       3       Unique ID
    """
    unique_id: int
    attributes: int = 0
    offset: int = 0
    ENTRY_SIZE: ClassVar[int] = 8

    @property
    def key(self) -> int:
        """Key of this entry's blob in the database."""
        return self.unique_id

    @property
    def category(self) -> int:
        """Category index stored in the low nibble of the attributes."""
        return self.attributes & RecordAttributes.CATEGORY_MASK

    @category.setter
    def category(self, index: int) -> None:
        self.attributes = (self.attributes & 0xF0) | (index & RecordAttributes.CATEGORY_MASK)

    def to_bytes(self) -> bytes:
        """Serialize the entry to 8 bytes."""
        return struct.pack(
            ">II",
            self.offset,
            ((self.attributes & 0xFF) << 24) | (self.unique_id & 0xFFFFFF),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "RecordEntry":
        """Deserialize an entry from 8 bytes."""
        offset, packed = struct.unpack(">II", data[:cls.ENTRY_SIZE])
        return cls(unique_id=packed & 0xFFFFFF, attributes=packed >> 24, offset=offset)


@dataclass
class ResourceEntry:
    """
    Resource index entry (10 bytes).

    Structure:
        Offset  Size    Description
        ------  ----    -----------
        0       4       Resource type (four-character code)
        4       2       Resource ID
        6       4       Offset of the resource data
    """
    resource_type: str
    resource_id: int
    offset: int = 0
    ENTRY_SIZE: ClassVar[int] = 10

    @property
    def key(self) -> tuple[str, int]:
        """Key of this entry's blob. IDs are only unique within a type."""
        return (self.resource_type, self.resource_id)

    def to_bytes(self) -> bytes:
        """Serialize the entry to 10 bytes."""
        return struct.pack(">4sHI", encode_code(self.resource_type), self.resource_id, self.offset)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ResourceEntry":
        """Deserialize an entry from 10 bytes."""
        resource_type, resource_id, offset = struct.unpack(">4sHI", data[:cls.ENTRY_SIZE])
        return cls(resource_type=decode_code(resource_type), resource_id=resource_id, offset=offset)


IndexEntry = Union[RecordEntry, ResourceEntry]


def read_index(stream: BinaryIO, header: DatabaseHeader) -> list[IndexEntry]:
    """
    Read ``header.record_count`` entries following the header.

    Entries are returned in on-disk order.

    Raises:
        TruncatedInputError: If the stream ends inside the index
    """
    entry_cls = ResourceEntry if header.is_resource_db else RecordEntry
    size = entry_cls.ENTRY_SIZE

    entries: list[IndexEntry] = []
    for i in range(header.record_count):
        offset = HEADER_SIZE + i * size
        data = read_exact(stream, offset, size, f"index entry {i}")
        entries.append(entry_cls.from_bytes(data))
    return entries
