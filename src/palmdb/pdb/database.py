"""
Palm Database Container
=======================

This module provides the PalmDatabase class, which reads and writes a
complete PDB/PRC file: header, index, optional AppInfo and SortInfo
blocks and the data blobs.

Loading
-------
1. Read the 78-byte header
2. Read the index entries that follow it
3. Stable-sort the entries by offset (duplicate offsets only warn)
4. Infer the AppInfo/SortInfo extents from neighbouring offsets
5. Read each blob up to the next entry's offset (the last one up to
   the end of the file) and decode it if a decoder is registered

Dumping
-------
Every offset in the header and index is recomputed first, so records
can be added, removed or resized freely between load and dump. The
file is then written in fixed order: header, index, AppInfo, SortInfo,
blobs in index order.

Usage Examples
--------------
Reading a database:
    >>> from palmdb import PalmDatabase
    >>> db = PalmDatabase.from_file("MemoDB.pdb", standard_appinfo=True)
    >>> print(db.name, len(db))
    >>> for blob in db:
    ...     print(blob.key, blob.category, len(blob.data))

Creating one:
    >>> db = PalmDatabase(name="Notes", db_type="DATA", creator="nOTe")
    >>> db.add_record(b"hello")
    >>> db.to_file("Notes.pdb")
"""

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Optional, Union
import io
import logging

from palmdb.config import PalmDBConfig
from palmdb.errors import PalmDBError
from palmdb.pdb.appinfo import AppInfo, SortInfo
from palmdb.pdb.blob import DataBlob, DecodedPayload, Payload, RawPayload, decode_payload
from palmdb.pdb.layout import infer_block_layout, iter_blob_extents, sort_index
from palmdb.pdb.records import (
    HEADER_SIZE,
    DatabaseHeader,
    IndexEntry,
    RecordEntry,
    ResourceEntry,
    read_exact,
    read_index,
)
from palmdb.pdb.registry import BlobKind, DecoderRegistry, default_registry
from palmdb.pdb.timestamps import from_palm, from_palm_optional, to_palm

# Logger for this module
logger = logging.getLogger(__name__)

# Unique IDs are 24 bits wide in a record entry
MAX_UNIQUE_ID = 0xFFFFFF

# The header stores the entry count in 16 bits and offsets in 32 bits
MAX_ENTRIES = 0xFFFF
MAX_OFFSET = 0xFFFFFFFF


class PalmDatabase:
    """
    A Palm OS record or resource database.

    Attributes:
        header: The database header
        index: Index entries in file order
        records: Blobs keyed by record unique ID or (type, id) for resources
        appinfo: The AppInfo block, or None
        sortinfo: The SortInfo block, or None
        standard_appinfo: Whether the AppInfo block starts with a category table
        registry: Where structured decoders are looked up
        config: Loading and encoding settings

    Example:
        >>> db = PalmDatabase.from_file("ToDoDB.pdb", standard_appinfo=True)
        >>> db.appinfo.category(1)
        'Business'
    """

    def __init__(
        self,
        name: str = "",
        db_type: str = "DATA",
        creator: str = "    ",
        resource: bool = False,
        standard_appinfo: bool = False,
        type_id: Optional[str] = None,
        registry: Optional[DecoderRegistry] = None,
        config: Optional[PalmDBConfig] = None,
    ) -> None:
        self.config = config if config is not None else PalmDBConfig()
        self.header = DatabaseHeader(
            name=name,
            db_type=db_type,
            creator=creator,
            encoding=self.config.text_encoding,
        )
        self.header.is_resource_db = resource
        self.index: list[IndexEntry] = []
        self.records: dict[Any, DataBlob] = {}
        self.appinfo: Optional[AppInfo] = None
        self.sortinfo: Optional[SortInfo] = None
        self.standard_appinfo = standard_appinfo
        self.registry = registry if registry is not None else default_registry
        self._type_id = type_id

    # =========================================================================
    # Construction Helpers
    # =========================================================================

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs: Any) -> "PalmDatabase":
        """
        Load a database from raw bytes.

        Keyword arguments are passed to the constructor.
        """
        database = cls(**kwargs)
        database.load(io.BytesIO(data))
        return database

    @classmethod
    def from_file(cls, filepath: Union[str, Path], **kwargs: Any) -> "PalmDatabase":
        """
        Load a database from disk.

        Raises:
            FileNotFoundError: If the file doesn't exist
            PDBFormatError: If the file is not a valid database
        """
        with open(filepath, "rb") as stream:
            database = cls(**kwargs)
            database.load(stream)
        return database

    def to_bytes(self) -> bytes:
        """Serialize the database (recomputing offsets first)."""
        stream = io.BytesIO()
        self.dump(stream)
        return stream.getvalue()

    def to_file(self, filepath: Union[str, Path]) -> int:
        """
        Write the database to disk.

        Returns:
            Number of bytes written
        """
        data = self.to_bytes()
        Path(filepath).write_bytes(data)
        return len(data)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def type_id(self) -> str:
        """Key used for decoder lookups (defaults to the creator code)."""
        return self._type_id if self._type_id is not None else self.header.creator

    @property
    def is_resource_db(self) -> bool:
        return self.header.is_resource_db

    @property
    def name(self) -> str:
        return self.header.name

    @name.setter
    def name(self, value: str) -> None:
        self.header.name = value

    @property
    def db_type(self) -> str:
        return self.header.db_type

    @property
    def creator(self) -> str:
        return self.header.creator

    @property
    def creation_time(self) -> datetime:
        return from_palm(self.header.creation_time)

    @creation_time.setter
    def creation_time(self, value: datetime) -> None:
        self.header.creation_time = to_palm(value)

    @property
    def modification_time(self) -> datetime:
        return from_palm(self.header.modification_time)

    @modification_time.setter
    def modification_time(self, value: datetime) -> None:
        self.header.modification_time = to_palm(value)

    @property
    def backup_time(self) -> Optional[datetime]:
        """Last backup time, or None if the database was never backed up."""
        return from_palm_optional(self.header.backup_time)

    @backup_time.setter
    def backup_time(self, value: Optional[datetime]) -> None:
        self.header.backup_time = to_palm(value) if value is not None else 0

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, stream: BinaryIO) -> None:
        """
        Replace this database's contents with the database in ``stream``.

        The stream must be seekable. Nothing is changed if loading fails.

        Raises:
            TruncatedInputError: If the header or index is cut short
            InvalidLayoutError: If the offsets imply a negative length
            DecoderParseError: If a registered decoder fails
        """
        stream.seek(0, io.SEEK_END)
        end_of_data = stream.tell()
        encoding = self.config.text_encoding
        registry = self.registry if self.config.decode_blobs else None

        header = DatabaseHeader.read(stream, encoding)
        index = sort_index(read_index(stream, header))
        layout = infer_block_layout(header, index, end_of_data)

        logger.debug(
            f"Header: name={header.name!r} type={header.db_type!r} "
            f"creator={header.creator!r} entries={header.record_count}"
        )

        type_id = self._type_id if self._type_id is not None else header.creator
        kind = BlobKind.RESOURCE if header.is_resource_db else BlobKind.RECORD

        appinfo = None
        if layout.appinfo is not None and layout.appinfo.length > 0:
            extent = layout.appinfo
            data = read_exact(stream, extent.offset, extent.length, "AppInfo block")
            appinfo = AppInfo.from_bytes(
                data,
                standard=self.standard_appinfo,
                registry=registry,
                type_id=type_id,
                offset=extent.offset,
                encoding=encoding,
            )

        sortinfo = None
        if layout.sortinfo is not None and layout.sortinfo.length > 0:
            extent = layout.sortinfo
            sortinfo = SortInfo(read_exact(stream, extent.offset, extent.length, "SortInfo block"))

        entries: list[IndexEntry] = []
        blobs: list[tuple[IndexEntry, Payload]] = []
        seen: set[Any] = set()
        for entry, extent in iter_blob_extents(index, end_of_data):
            if entry.key in seen:
                logger.warning(f"Skipping index entry with duplicate key {entry.key!r}")
                continue
            seen.add(entry.key)

            data = read_exact(stream, extent.offset, extent.length, f"blob {entry.key!r}")
            payload = decode_payload(registry, type_id, kind, data, entry.key, extent.offset)
            entries.append(entry)
            blobs.append((entry, payload))

        self.header = header
        self.index = entries
        self.records = {entry.key: DataBlob(entry, payload, self) for entry, payload in blobs}
        self.appinfo = appinfo
        self.sortinfo = sortinfo

        logger.info(
            f"Loaded {header.name!r}: {len(self.records)} "
            f"{'resources' if header.is_resource_db else 'records'}, "
            f"appinfo={appinfo is not None}, sortinfo={sortinfo is not None}"
        )

    # =========================================================================
    # Dumping
    # =========================================================================

    def recompute_offsets(self) -> None:
        """
        Recompute every offset in the header and index.

        Blobs are laid out in the current index order, which therefore
        becomes offset order. The index itself is not re-sorted.

        Raises:
            PalmDBError: If the entries or their data do not fit the
                16-bit entry count or 32-bit offsets
        """
        if len(self.records) > MAX_ENTRIES:
            raise PalmDBError(
                f"{len(self.records)} entries exceed the limit of {MAX_ENTRIES}"
            )
        self.header.record_count = len(self.records)

        offset = HEADER_SIZE
        for entry in self.index:
            offset += entry.ENTRY_SIZE

        if self.appinfo is not None:
            self.header.appinfo_offset = offset
            offset += self.appinfo.get_size()
        else:
            self.header.appinfo_offset = 0

        if self.sortinfo is not None:
            self.header.sortinfo_offset = offset
            offset += self.sortinfo.get_size()
        else:
            self.header.sortinfo_offset = 0

        for entry in self.index:
            if offset > MAX_OFFSET:
                raise PalmDBError(f"entry {entry.key!r} would start past offset {MAX_OFFSET:#x}")
            entry.offset = offset
            offset += self.records[entry.key].get_size()

        logger.debug(f"Recomputed offsets: {len(self.index)} entries, {offset} bytes total")

    def dump(self, stream: BinaryIO) -> None:
        """Write the database to ``stream``."""
        self.recompute_offsets()

        stream.write(self.header.to_bytes())
        for entry in self.index:
            stream.write(entry.to_bytes())
        if self.appinfo is not None:
            stream.write(self.appinfo.to_bytes())
        if self.sortinfo is not None:
            stream.write(self.sortinfo.to_bytes())
        for entry in self.index:
            stream.write(self.records[entry.key].to_bytes())

        logger.info(f"Wrote {self.header.name!r}: {len(self.index)} entries")

    # =========================================================================
    # Adding and Removing Data
    # =========================================================================

    def add_record(
        self,
        data: Any = b"",
        attributes: int = 0,
        category: Union[str, int, None] = None,
        unique_id: Optional[int] = None,
    ) -> DataBlob:
        """
        Append a record.

        Args:
            data: Raw bytes, or a structured view with a to_bytes() method
            attributes: Record attribute bits
            category: Category name or index (overrides the attribute nibble)
            unique_id: Unique ID; taken from the header's seed when omitted

        Returns:
            The new DataBlob

        Raises:
            PalmDBError: If this is a resource database, the ID is taken
                or the database is full
            CategoryNotFoundError: If ``category`` names no category
        """
        if self.is_resource_db:
            raise PalmDBError("cannot add a record to a resource database")
        self._check_capacity()

        if unique_id is None:
            unique_id = self._next_unique_id()
        elif unique_id in self.records:
            raise PalmDBError(f"record {unique_id:#08x} already exists")
        elif not 0 <= unique_id <= MAX_UNIQUE_ID:
            raise PalmDBError(f"unique ID {unique_id:#x} does not fit in 24 bits")

        entry = RecordEntry(unique_id=unique_id, attributes=attributes & 0xFF)
        blob = DataBlob(entry, _make_payload(data), self)
        if category is not None:
            blob.category = category

        self.index.append(entry)
        self.records[entry.key] = blob
        logger.debug(f"Added record {unique_id:#08x} ({blob.get_size()} bytes)")
        return blob

    def add_resource(self, resource_type: str, resource_id: int, data: Any = b"") -> DataBlob:
        """
        Append a resource.

        Raises:
            PalmDBError: If this is a record database, the resource exists
                or the database is full
        """
        if not self.is_resource_db:
            raise PalmDBError("cannot add a resource to a record database")
        self._check_capacity()

        entry = ResourceEntry(resource_type=resource_type, resource_id=resource_id)
        if entry.key in self.records:
            raise PalmDBError(f"resource {entry.key!r} already exists")

        blob = DataBlob(entry, _make_payload(data), self)
        self.index.append(entry)
        self.records[entry.key] = blob
        logger.debug(f"Added resource {entry.key!r} ({blob.get_size()} bytes)")
        return blob

    def remove(self, key: Any) -> DataBlob:
        """
        Remove a record or resource.

        Raises:
            KeyError: If no blob has this key
        """
        blob = self.records.pop(key)
        self.index = [entry for entry in self.index if entry.key != key]
        return blob

    def _check_capacity(self) -> None:
        if len(self.records) >= MAX_ENTRIES:
            raise PalmDBError(f"database already holds the maximum of {MAX_ENTRIES} entries")

    def _next_unique_id(self) -> int:
        """Take the next free unique ID from the header's seed."""
        candidate = max(self.header.unique_id_seed, 1)
        while candidate in self.records:
            candidate += 1
        if candidate > MAX_UNIQUE_ID:
            raise PalmDBError("no unique record IDs left")
        self.header.unique_id_seed = candidate + 1
        return candidate

    # =========================================================================
    # Container Protocol
    # =========================================================================

    def __iter__(self) -> Iterator[DataBlob]:
        """Iterate over blobs in index order."""
        for entry in self.index:
            yield self.records[entry.key]

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, key: Any) -> DataBlob:
        return self.records[key]

    def __contains__(self, key: object) -> bool:
        return key in self.records

    def __eq__(self, other: object) -> bool:
        """
        Compare contents, ignoring offsets and the stored entry count.
        """
        if not isinstance(other, PalmDatabase):
            return NotImplemented
        return self._comparable() == other._comparable()

    __hash__ = None

    def _comparable(self) -> tuple:
        header = replace(self.header, appinfo_offset=0, sortinfo_offset=0, record_count=0)
        entries = [(entry.key, getattr(entry, "attributes", None)) for entry in self.index]
        blobs = {key: blob.to_bytes() for key, blob in self.records.items()}
        appinfo = self.appinfo.to_bytes() if self.appinfo is not None else b""
        sortinfo = self.sortinfo.to_bytes() if self.sortinfo is not None else b""
        return (header, entries, blobs, appinfo, sortinfo)

    def __repr__(self) -> str:
        return (
            f"PalmDatabase(name={self.name!r}, type={self.db_type!r}, "
            f"creator={self.creator!r}, entries={len(self)})"
        )

    # =========================================================================
    # Summary
    # =========================================================================

    def get_info(self) -> dict:
        """
        Get summary information about the database.

        Returns:
            Dictionary with database information
        """
        return {
            "name": self.name,
            "kind": "resource" if self.is_resource_db else "record",
            "db_type": self.db_type,
            "creator": self.creator,
            "version": self.header.version,
            "attributes": f"0x{self.header.attributes:04X}",
            "created": self.creation_time.isoformat(),
            "modified": self.modification_time.isoformat(),
            "backed_up": self.backup_time.isoformat() if self.backup_time else None,
            "modification_number": self.header.modification_number,
            "entry_count": len(self.records),
            "appinfo_size": self.appinfo.get_size() if self.appinfo is not None else 0,
            "sortinfo_size": self.sortinfo.get_size() if self.sortinfo is not None else 0,
            "data_size": sum(blob.get_size() for blob in self.records.values()),
            "decoded_count": sum(1 for blob in self.records.values() if blob.is_decoded),
        }


def _make_payload(data: Any) -> Payload:
    """Wrap bytes as raw and anything else as a structured view."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return RawPayload(bytes(data))
    # int.to_bytes() exists but is not a view
    if isinstance(data, int) or not callable(getattr(data, "to_bytes", None)):
        raise TypeError(f"expected bytes or an object with to_bytes(), got {type(data).__name__}")
    return DecodedPayload(data)
