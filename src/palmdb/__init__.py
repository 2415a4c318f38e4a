"""
palmdb - Palm OS Database (PDB/PRC) Reader and Writer
=====================================================

This package reads and writes the container format used by Palm OS
handhelds to store databases: a fixed header, an index of record or
resource entries, optional AppInfo and SortInfo blocks, and the record
data itself.

Main Components
---------------
- **pdb**: The container format
    Header and index codecs, block/blob extent inference, the decoder
    registry for application-specific record layouts, and PalmDatabase

- **cli**: Command-line tool (palmdb)
    Inspect, extract and rewrite database files

Quick Start
-----------
Read a database:
    >>> from palmdb import PalmDatabase
    >>> db = PalmDatabase.from_file("MemoDB.pdb", standard_appinfo=True)
    >>> for blob in db:
    ...     print(blob.key, blob.category, len(blob.data))

Write it back after changes:
    >>> db.add_record(b"new memo\\x00", category="Personal")
    >>> db.to_file("MemoDB.pdb")

Or use the command-line tool:
    $ palmdb info MemoDB.pdb
    $ palmdb list MemoDB.pdb

Reference Documentation
-----------------------
- Palm File Format Specification (Palm Inc.)
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from palmdb.config import PalmDBConfig
from palmdb.errors import (
    PalmDBError,
    PDBFormatError,
    TruncatedInputError,
    InvalidLayoutError,
    InvalidNameError,
    DecoderParseError,
    CategoryError,
    CategoryNotFoundError,
    IndexOutOfRangeError,
    DuplicateOffsetWarning,
)
from palmdb.pdb import (
    PalmDatabase,
    DatabaseHeader,
    RecordEntry,
    ResourceEntry,
    DataBlob,
    RawPayload,
    DecodedPayload,
    AppInfo,
    SortInfo,
    CategoryTable,
    BlobKind,
    DecoderRegistry,
    default_registry,
    register_decoder,
)

__all__ = [
    "__version__",
    "PalmDBConfig",
    # Errors
    "PalmDBError",
    "PDBFormatError",
    "TruncatedInputError",
    "InvalidLayoutError",
    "InvalidNameError",
    "DecoderParseError",
    "CategoryError",
    "CategoryNotFoundError",
    "IndexOutOfRangeError",
    "DuplicateOffsetWarning",
    # Container
    "PalmDatabase",
    "DatabaseHeader",
    "RecordEntry",
    "ResourceEntry",
    "DataBlob",
    "RawPayload",
    "DecodedPayload",
    "AppInfo",
    "SortInfo",
    "CategoryTable",
    # Decoders
    "BlobKind",
    "DecoderRegistry",
    "default_registry",
    "register_decoder",
]
