"""
Palm Database Container Format
==============================

This module provides support for reading and writing Palm OS database
files: PDB (record databases) and PRC (resource databases).

Overview
--------
This module provides:
- **PalmDatabase**: Load, modify and dump a complete database
- **DatabaseHeader / RecordEntry / ResourceEntry**: Fixed-size codecs
- **Layout inference**: Block and blob extents from stored offsets
- **DataBlob**: One record or resource, raw or decoded
- **AppInfo / CategoryTable / SortInfo**: The optional blocks
- **DecoderRegistry**: Plug-in point for application record layouts
- **Timestamp utilities**: Palm epoch (1904) conversion

Quick Start
-----------
Reading a database:

    >>> from palmdb.pdb import PalmDatabase
    >>> db = PalmDatabase.from_file("AddressDB.pdb", standard_appinfo=True)
    >>> db.appinfo.category(0)
    'Unfiled'

Registering a decoder for an application's records:

    >>> from palmdb.pdb import BlobKind, register_decoder
    >>> register_decoder("addr", BlobKind.RECORD)(AddressRecord)
"""

# =============================================================================
# Public API Exports
# =============================================================================

# Header and index codecs
from palmdb.pdb.records import (
    HEADER_SIZE,
    DatabaseAttributes,
    RecordAttributes,
    DatabaseHeader,
    RecordEntry,
    ResourceEntry,
    IndexEntry,
    read_index,
)

# Timestamp utilities
from palmdb.pdb.timestamps import (
    PALM_EPOCH,
    from_palm,
    from_palm_optional,
    to_palm,
)

# Layout inference
from palmdb.pdb.layout import (
    Extent,
    BlockLayout,
    sort_index,
    infer_block_layout,
    iter_blob_extents,
)

# Decoders and blobs
from palmdb.pdb.registry import (
    BlobKind,
    DecoderRegistry,
    default_registry,
    register_decoder,
)
from palmdb.pdb.blob import (
    DataBlob,
    RawPayload,
    DecodedPayload,
    decode_payload,
)

# Optional blocks
from palmdb.pdb.appinfo import (
    CATEGORY_COUNT,
    CATEGORY_TABLE_SIZE,
    Category,
    CategoryTable,
    AppInfo,
    SortInfo,
)

# The database itself
from palmdb.pdb.database import PalmDatabase

# =============================================================================
# Module-level __all__ for explicit exports
# =============================================================================

__all__ = [
    # Header and index
    "HEADER_SIZE",
    "DatabaseAttributes",
    "RecordAttributes",
    "DatabaseHeader",
    "RecordEntry",
    "ResourceEntry",
    "IndexEntry",
    "read_index",
    # Timestamps
    "PALM_EPOCH",
    "from_palm",
    "from_palm_optional",
    "to_palm",
    # Layout
    "Extent",
    "BlockLayout",
    "sort_index",
    "infer_block_layout",
    "iter_blob_extents",
    # Decoders and blobs
    "BlobKind",
    "DecoderRegistry",
    "default_registry",
    "register_decoder",
    "DataBlob",
    "RawPayload",
    "DecodedPayload",
    "decode_payload",
    # Blocks
    "CATEGORY_COUNT",
    "CATEGORY_TABLE_SIZE",
    "Category",
    "CategoryTable",
    "AppInfo",
    "SortInfo",
    # Database
    "PalmDatabase",
]
