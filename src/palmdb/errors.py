"""
Palm Database Error Hierarchy
=============================

This module defines the exception hierarchy for the palmdb package.
All exceptions inherit from PalmDBError, allowing callers to catch all
library errors with a single except clause if desired.

Exception Hierarchy
-------------------
PalmDBError (base)
├── PDBFormatError - structural problem in the container
│   ├── TruncatedInputError - a fixed-size read ran past the data
│   ├── InvalidLayoutError - offsets imply a negative length
│   └── InvalidNameError - a stored name does not decode
├── DecoderParseError - a registered structured decoder failed
└── CategoryError (category table handling)
    ├── CategoryNotFoundError - no category with that name
    └── IndexOutOfRangeError - category index outside 0..15

DuplicateOffsetWarning is a warning category, not an exception: files
written by some desktop tools repeat an offset in the index and still
load fine.

A missing structured decoder is not an error at all. The registry lookup
returns None and the blob stays raw.
"""

from typing import Any, Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class PalmDBError(Exception):
    """
    Base exception for all palmdb errors.

        try:
            db = PalmDatabase.from_file("AddressDB.pdb")
        except PalmDBError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Container Format Exceptions
# =============================================================================

class PDBFormatError(PalmDBError):
    """
    Invalid container layout.

    Raised while loading a file whose header, index or block offsets
    cannot describe a valid database. These errors abort the load.
    """
    pass


class TruncatedInputError(PDBFormatError):
    """
    A fixed-size region extends past the end of the input.

    Attributes:
        what: Name of the region being read ("header", "index entry 3", ...)
        offset: Absolute byte offset where the read started
        expected: Number of bytes the region needs
        available: Number of bytes that were actually available
    """

    def __init__(self, what: str, offset: int, expected: int, available: int):
        self.what = what
        self.offset = offset
        self.expected = expected
        self.available = available
        super().__init__(
            f"truncated {what} at offset {offset}: "
            f"need {expected} bytes, got {available}"
        )


class InvalidLayoutError(PDBFormatError):
    """
    Stored offsets imply a negative block or blob length.

    Raised when app-info, sort-info or record offsets are out of order,
    or when an index entry points past the end of the file.
    """
    pass


class InvalidNameError(PDBFormatError):
    """
    A stored name cannot be decoded with the configured text encoding.

    Attributes:
        what: Which name ("database name", "category 3", ...)
        offset: Absolute byte offset of the name field
    """

    def __init__(self, what: str, offset: int, reason: str):
        self.what = what
        self.offset = offset
        super().__init__(f"cannot decode {what} at offset {offset}: {reason}")


# =============================================================================
# Structured Decoder Exceptions
# =============================================================================

class DecoderParseError(PalmDBError):
    """
    A registered structured decoder could not parse its bytes.

    The original exception is chained as __cause__.

    Attributes:
        key: Blob key (record unique id, resource (type, id), or "appinfo")
        offset: Absolute offset of the bytes handed to the decoder
        length: Number of bytes handed to the decoder
    """

    def __init__(self, key: Any, offset: int, length: int, reason: Optional[str] = None):
        self.key = key
        self.offset = offset
        self.length = length
        message = f"cannot decode {key!r} ({length} bytes at offset {offset})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


# =============================================================================
# Category Exceptions
# =============================================================================

class CategoryError(PalmDBError):
    """Base exception for category table errors."""
    pass


class CategoryNotFoundError(CategoryError):
    """
    No category with the requested name.

    Category creation is not supported, so assigning an unknown name to
    a record raises this instead of adding a new slot.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"no category named {name!r}")


class IndexOutOfRangeError(CategoryError, IndexError):
    """Category index outside the 16 available slots."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"category index {index} out of range 0..15")


# =============================================================================
# Warnings
# =============================================================================

class DuplicateOffsetWarning(UserWarning):
    """Two or more index entries point at the same offset."""
    pass
