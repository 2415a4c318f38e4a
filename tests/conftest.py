"""
Shared fixtures for palmdb tests.

The builders here assemble database files byte by byte with struct,
independently of the library's own encoders, so the tests check the
loader against the file format rather than against itself.
"""

import struct

import pytest


HEADER_FORMAT = ">32sHHIIIIII4s4sIIH"

# 1970-01-01 in Palm epoch seconds
UNIX_EPOCH_PALM = 2082844800


def make_header(
    count: int,
    appinfo_offset: int = 0,
    sortinfo_offset: int = 0,
    attributes: int = 0,
    name: bytes = b"TestDB",
    db_type: bytes = b"DATA",
    creator: bytes = b"test",
    next_record_list_id: int = 0,
) -> bytes:
    """Pack a 78-byte database header."""
    return struct.pack(
        HEADER_FORMAT,
        name.ljust(32, b"\x00"),
        attributes,
        1,                          # version
        UNIX_EPOCH_PALM,            # creation time
        UNIX_EPOCH_PALM + 3600,     # modification time
        0,                          # backup time
        7,                          # modification number
        appinfo_offset,
        sortinfo_offset,
        db_type,
        creator,
        0x1000,                     # unique ID seed
        next_record_list_id,
        count,
    )


def build_pdb(records, appinfo: bytes = b"", sortinfo: bytes = b"", **header_args) -> bytes:
    """
    Build a record database.

    Args:
        records: List of (unique_id, attributes, data) in file order
        appinfo: AppInfo block bytes (empty = absent)
        sortinfo: SortInfo block bytes (empty = absent)
    """
    cursor = 78 + 8 * len(records)
    appinfo_offset = cursor if appinfo else 0
    cursor += len(appinfo)
    sortinfo_offset = cursor if sortinfo else 0
    cursor += len(sortinfo)

    index = bytearray()
    data = bytearray()
    for unique_id, attributes, payload in records:
        index.extend(struct.pack(">II", cursor, (attributes << 24) | unique_id))
        data.extend(payload)
        cursor += len(payload)

    header = make_header(len(records), appinfo_offset, sortinfo_offset, **header_args)
    return header + bytes(index) + appinfo + sortinfo + bytes(data)


def build_prc(resources) -> bytes:
    """
    Build a resource database.

    Args:
        resources: List of (type, id, data) in file order
    """
    cursor = 78 + 10 * len(resources)
    index = bytearray()
    data = bytearray()
    for resource_type, resource_id, payload in resources:
        index.extend(struct.pack(">4sHI", resource_type, resource_id, cursor))
        data.extend(payload)
        cursor += len(payload)

    header = make_header(len(resources), attributes=0x0001, db_type=b"appl", creator=b"tEsT")
    return header + bytes(index) + bytes(data)


def build_category_table(names, ids=None, renamed: int = 0, last_unique_id: int = 15) -> bytes:
    """Pack a 276-byte standard category table."""
    names = list(names) + [""] * (16 - len(names))
    ids = list(ids) if ids is not None else list(range(len(names)))
    ids = ids + [0] * (16 - len(ids))

    result = bytearray(struct.pack(">H", renamed))
    for name in names:
        result.extend(name.encode("latin-1").ljust(16, b"\x00"))
    result.extend(ids)
    result.append(last_unique_id)
    result.append(0)
    return bytes(result)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_pdb():
    """The build_pdb() builder."""
    return build_pdb


@pytest.fixture
def make_prc():
    """The build_prc() builder."""
    return build_prc


@pytest.fixture
def make_categories():
    """The build_category_table() builder."""
    return build_category_table


@pytest.fixture
def header_bytes():
    """The make_header() builder."""
    return make_header


@pytest.fixture
def sample_records():
    """Three records: (unique_id, attributes, data)."""
    return [
        (0x6F0001, 0x00, b"first record"),
        (0x6F0002, 0x41, b"second"),            # dirty, category 1
        (0x6F0003, 0x00, bytes(range(32))),
    ]


@pytest.fixture
def sample_pdb(sample_records) -> bytes:
    """A plain record database with no optional blocks."""
    return build_pdb(sample_records)


@pytest.fixture
def category_table_bytes() -> bytes:
    return build_category_table(["Unfiled", "Fuel", "Service"])


@pytest.fixture
def standard_pdb(sample_records, category_table_bytes) -> bytes:
    """A record database with a standard AppInfo block and a SortInfo block."""
    return build_pdb(
        sample_records,
        appinfo=category_table_bytes + b"\x00\x02rest",
        sortinfo=b"\x00\x01\x02\x03",
    )


@pytest.fixture
def sample_prc() -> bytes:
    return build_prc([
        (b"code", 0, b"\x4e\x75" * 8),
        (b"code", 1, b"\x4e\x56\x00\x00"),
        (b"tSTR", 1000, b"Hello\x00"),
    ])
