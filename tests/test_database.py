"""
PalmDatabase Tests
==================

Tests for loading, modifying and dumping complete databases.

Test Categories
---------------
1. Loading: Header, index, blocks and blobs from bytes and files
2. Round trip: Byte identity and content equality after a dump
3. Layout: Index reordering, duplicate offsets and corrupt offsets
4. Editing: Adding, removing and resizing blobs
5. Categories: Record category lookup through the AppInfo table
6. Decoders: Registered structured views
"""

from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
import gc
import logging
import struct

import pytest

from palmdb import PalmDBConfig
from palmdb.pdb import (
    AppInfo,
    BlobKind,
    DataBlob,
    DecodedPayload,
    DecoderRegistry,
    PalmDatabase,
    RawPayload,
    RecordEntry,
    ResourceEntry,
    SortInfo,
)
from palmdb.errors import (
    CategoryNotFoundError,
    DecoderParseError,
    DuplicateOffsetWarning,
    IndexOutOfRangeError,
    InvalidLayoutError,
    InvalidNameError,
    PalmDBError,
    TruncatedInputError,
)


@dataclass
class TextRecord:
    """Decoder used in tests: ASCII text, at most 16 bytes."""
    text: str

    @classmethod
    def from_bytes(cls, data: bytes) -> "TextRecord":
        if len(data) > 16:
            raise ValueError("text record too long")
        return cls(data.decode("ascii"))

    def to_bytes(self) -> bytes:
        return self.text.encode("ascii")


@dataclass
class Units:
    """AppInfo decoder used in tests: one big-endian word."""
    units: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "Units":
        return cls(struct.unpack(">H", data[:2])[0])

    def to_bytes(self) -> bytes:
        return struct.pack(">H", self.units)


def _offsets(data: bytes) -> list[int]:
    """Record offsets from the index of a serialized record database."""
    count = struct.unpack(">H", data[76:78])[0]
    return [struct.unpack(">I", data[78 + i * 8:82 + i * 8])[0] for i in range(count)]


# =============================================================================
# Loading Tests
# =============================================================================

class TestLoading:
    """Tests for reading databases."""

    def test_load_records(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)

        assert db.name == "TestDB"
        assert db.db_type == "DATA"
        assert db.creator == "test"
        assert not db.is_resource_db
        assert len(db) == 3
        assert [blob.key for blob in db] == [0x6F0001, 0x6F0002, 0x6F0003]
        assert db[0x6F0001].data == b"first record"
        assert db[0x6F0002].data == b"second"
        assert db[0x6F0003].data == bytes(range(32))
        assert db[0x6F0002].entry.attributes == 0x41
        assert db.appinfo is None
        assert db.sortinfo is None

    def test_last_blob_runs_to_end_of_file(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb + b"tail")
        assert db[0x6F0003].data == bytes(range(32)) + b"tail"

    def test_load_blocks(self, standard_pdb, category_table_bytes):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)

        assert db.appinfo.is_standard
        assert db.appinfo.category(1) == "Fuel"
        assert db.appinfo.rest == b"\x00\x02rest"
        assert db.sortinfo == SortInfo(b"\x00\x01\x02\x03")
        assert db[0x6F0001].data == b"first record"

    def test_opaque_appinfo(self, standard_pdb, category_table_bytes):
        db = PalmDatabase.from_bytes(standard_pdb)

        assert not db.appinfo.is_standard
        assert db.appinfo.to_bytes() == category_table_bytes + b"\x00\x02rest"

    def test_appinfo_only_database(self, make_pdb):
        """With no index entries the AppInfo block runs to the end of the file."""
        db = PalmDatabase.from_bytes(make_pdb([], appinfo=b"xyz"))

        assert len(db) == 0
        assert db.appinfo.to_bytes() == b"xyz"

    def test_load_resources(self, sample_prc):
        db = PalmDatabase.from_bytes(sample_prc)

        assert db.is_resource_db
        assert db.db_type == "appl"
        assert [blob.key for blob in db] == [("code", 0), ("code", 1), ("tSTR", 1000)]
        assert db["tSTR", 1000].data == b"Hello\x00"
        assert not db["code", 0].is_record

    def test_timestamps(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)

        assert db.creation_time == datetime(1970, 1, 1)
        assert db.modification_time == datetime(1970, 1, 1, 1, 0)
        assert db.backup_time is None

    def test_from_file(self, sample_pdb, tmp_path):
        path = tmp_path / "sample.pdb"
        path.write_bytes(sample_pdb)

        db = PalmDatabase.from_file(path)
        assert len(db) == 3

    def test_load_logs_summary(self, sample_pdb, caplog):
        with caplog.at_level(logging.INFO, logger="palmdb.pdb.database"):
            PalmDatabase.from_bytes(sample_pdb)
        assert "3 records" in caplog.text


# =============================================================================
# Round Trip Tests
# =============================================================================

class TestRoundTrip:
    """Tests for writing back what was loaded."""

    def test_record_database_is_byte_identical(self, sample_pdb):
        assert PalmDatabase.from_bytes(sample_pdb).to_bytes() == sample_pdb

    def test_resource_database_is_byte_identical(self, sample_prc):
        assert PalmDatabase.from_bytes(sample_prc).to_bytes() == sample_prc

    def test_blocks_are_byte_identical(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        assert db.to_bytes() == standard_pdb

    def test_reload_is_equal(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        reloaded = PalmDatabase.from_bytes(db.to_bytes(), standard_appinfo=True)
        assert reloaded == db

    def test_to_file(self, sample_pdb, tmp_path):
        path = tmp_path / "out.pdb"
        written = PalmDatabase.from_bytes(sample_pdb).to_file(path)

        assert written == len(sample_pdb)
        assert path.read_bytes() == sample_pdb

    def test_empty_database(self):
        data = PalmDatabase(name="Empty").to_bytes()

        assert len(data) == 78
        db = PalmDatabase.from_bytes(data)
        assert db.name == "Empty"
        assert len(db) == 0

    def test_multibyte_name_reloads(self):
        config = PalmDBConfig(text_encoding="utf-8")
        db = PalmDatabase(name="a" * 30 + "\xe9", config=config)

        reloaded = PalmDatabase.from_bytes(db.to_bytes(), config=config)
        assert reloaded.name == "a" * 30

    def test_full_width_name_is_byte_identical(self, make_pdb, sample_records):
        data = make_pdb(sample_records, name=b"N" * 32)
        assert PalmDatabase.from_bytes(data).to_bytes() == data

    def test_undecodable_name(self, make_pdb, sample_records):
        data = make_pdb(sample_records, name=b"Caf\xc3")
        with pytest.raises(InvalidNameError):
            PalmDatabase.from_bytes(data, config=PalmDBConfig(text_encoding="utf-8"))

    def test_next_record_list_id_preserved(self, make_pdb, sample_records):
        data = make_pdb(sample_records, next_record_list_id=5)
        output = PalmDatabase.from_bytes(data).to_bytes()
        assert struct.unpack(">I", output[72:76])[0] == 5

    def test_unknown_header_bits_preserved(self, make_pdb, sample_records):
        data = make_pdb(sample_records, attributes=0x0208)
        assert PalmDatabase.from_bytes(data).to_bytes()[32:34] == b"\x02\x08"

    def test_timestamp_change(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)
        db.backup_time = datetime(2001, 5, 4, 12, 0)

        reloaded = PalmDatabase.from_bytes(db.to_bytes())
        assert reloaded.backup_time == datetime(2001, 5, 4, 12, 0)
        assert reloaded != PalmDatabase.from_bytes(sample_pdb)


# =============================================================================
# Layout Tests
# =============================================================================

class TestLayout:
    """Tests for files whose index is not in offset order."""

    def test_index_out_of_order(self, header_bytes):
        index = struct.pack(">II", 98, 2) + struct.pack(">II", 94, 1)
        data = header_bytes(2) + index + b"AAAA" + b"BB"

        db = PalmDatabase.from_bytes(data)

        assert db[1].data == b"AAAA"
        assert db[2].data == b"BB"
        # The dump is written in offset order
        assert [blob.key for blob in db] == [1, 2]
        assert _offsets(db.to_bytes()) == [94, 98]

    def test_duplicate_offsets(self, header_bytes, caplog):
        index = struct.pack(">II", 94, 1) + struct.pack(">II", 94, 2)
        data = header_bytes(2) + index + b"AAAA"

        with caplog.at_level(logging.WARNING):
            with pytest.warns(DuplicateOffsetWarning):
                db = PalmDatabase.from_bytes(data)

        assert db[1].data == b""
        assert db[2].data == b"AAAA"
        assert "94" in caplog.text

    def test_duplicate_key_keeps_first(self, header_bytes, caplog):
        index = struct.pack(">II", 94, 7) + struct.pack(">II", 96, 7)
        data = header_bytes(2) + index + b"AABB"

        with caplog.at_level(logging.WARNING):
            db = PalmDatabase.from_bytes(data)

        assert len(db) == 1
        assert db[7].data == b"AA"
        assert "duplicate key" in caplog.text

    def test_truncated_header(self, sample_pdb):
        with pytest.raises(TruncatedInputError):
            PalmDatabase.from_bytes(sample_pdb[:50])

    def test_truncated_index(self, sample_pdb):
        with pytest.raises(TruncatedInputError) as exc_info:
            PalmDatabase.from_bytes(sample_pdb[:90])
        assert exc_info.value.offset == 86

    def test_appinfo_after_first_record(self, header_bytes):
        data = header_bytes(1, appinfo_offset=200) + struct.pack(">II", 86, 1) + b"data"
        with pytest.raises(InvalidLayoutError):
            PalmDatabase.from_bytes(data)

    def test_sortinfo_before_appinfo(self, header_bytes):
        data = header_bytes(0, appinfo_offset=90, sortinfo_offset=80) + bytes(20)
        with pytest.raises(InvalidLayoutError):
            PalmDatabase.from_bytes(data)

    def test_record_past_end_of_file(self, header_bytes):
        data = header_bytes(1) + struct.pack(">II", 500, 1) + b"data"
        with pytest.raises(InvalidLayoutError):
            PalmDatabase.from_bytes(data)

    def test_failed_load_leaves_database_untouched(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)

        with pytest.raises(TruncatedInputError):
            db.load(BytesIO(sample_pdb[:60]))

        assert len(db) == 3
        assert db.to_bytes() == sample_pdb


# =============================================================================
# Editing Tests
# =============================================================================

class TestEditing:
    """Tests for changing a database between load and dump."""

    def test_add_record_uses_seed(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)

        first = db.add_record(b"new")
        second = db.add_record(b"newer")

        assert first.key == 0x1000
        assert second.key == 0x1001
        assert db.header.unique_id_seed == 0x1002

    def test_add_record_explicit_id(self):
        db = PalmDatabase()
        db.add_record(b"x", unique_id=0x42)

        with pytest.raises(PalmDBError):
            db.add_record(b"y", unique_id=0x42)
        with pytest.raises(PalmDBError):
            db.add_record(b"z", unique_id=0x1000000)

    def test_add_record_to_resource_database(self, sample_prc):
        db = PalmDatabase.from_bytes(sample_prc)
        with pytest.raises(PalmDBError):
            db.add_record(b"x")

    def test_add_record_rejects_other_types(self):
        with pytest.raises(TypeError):
            PalmDatabase().add_record("not bytes")

    def test_offsets_recomputed(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)
        db[0x6F0001].data = b"a much longer first record than before"
        db.remove(0x6F0002)
        db.add_record(b"appended")

        data = db.to_bytes()
        offsets = _offsets(data)

        assert offsets[0] == 78 + 3 * 8
        assert offsets == sorted(offsets)
        assert offsets[-1] + len(b"appended") == len(data)

        # Each entry starts where the previous one's data ends
        for current, following in zip(db.index, db.index[1:]):
            assert current.offset + db[current.key].get_size() == following.offset

        reloaded = PalmDatabase.from_bytes(data)
        assert reloaded == db
        assert 0x6F0002 not in reloaded
        assert reloaded[0x6F0001].data == b"a much longer first record than before"

    def test_recompute_with_blocks(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)
        db.appinfo = AppInfo(payload=RawPayload(b"app"))
        db.sortinfo = SortInfo(b"so")
        db.recompute_offsets()

        assert db.header.appinfo_offset == 102
        assert db.header.sortinfo_offset == 105
        assert db.index[0].offset == 107
        assert db.header.record_count == 3

        reloaded = PalmDatabase.from_bytes(db.to_bytes())
        assert reloaded.appinfo.to_bytes() == b"app"
        assert reloaded.sortinfo.to_bytes() == b"so"

    def test_removed_block_offset_is_zero(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb)
        db.sortinfo = None
        data = db.to_bytes()

        assert struct.unpack(">I", data[56:60])[0] == 0
        assert PalmDatabase.from_bytes(data).sortinfo is None

    def test_remove_missing_key(self, sample_pdb):
        with pytest.raises(KeyError):
            PalmDatabase.from_bytes(sample_pdb).remove(0x123)

    def test_add_and_remove_resources(self, sample_prc):
        db = PalmDatabase.from_bytes(sample_prc)
        db.add_resource("tAIN", 1000, b"App\x00")
        db.remove(("code", 1))

        with pytest.raises(PalmDBError):
            db.add_resource("tSTR", 1000, b"dup")

        reloaded = PalmDatabase.from_bytes(db.to_bytes())
        assert [blob.key for blob in reloaded] == [("code", 0), ("tSTR", 1000), ("tAIN", 1000)]
        assert isinstance(reloaded.index[-1], ResourceEntry)

    @pytest.fixture
    def full_db(self) -> PalmDatabase:
        """A record database holding the maximum of 65535 entries."""
        db = PalmDatabase()
        for unique_id in range(1, 0x10000):
            entry = RecordEntry(unique_id=unique_id)
            db.index.append(entry)
            db.records[unique_id] = DataBlob(entry, RawPayload(b""), db)
        return db

    def test_full_database_rejects_records(self, full_db):
        assert len(full_db.to_bytes()) == 78 + 0xFFFF * 8

        with pytest.raises(PalmDBError):
            full_db.add_record(b"one too many")
        assert len(full_db) == 0xFFFF

    def test_too_many_entries_on_dump(self, full_db):
        entry = RecordEntry(unique_id=0x10000)
        full_db.index.append(entry)
        full_db.records[entry.key] = DataBlob(entry, RawPayload(b""), full_db)

        with pytest.raises(PalmDBError):
            full_db.to_bytes()

    def test_offset_past_32_bits(self, sample_pdb, monkeypatch):
        db = PalmDatabase.from_bytes(sample_pdb)
        monkeypatch.setattr(db[0x6F0001], "get_size", lambda: 0x100000000)

        with pytest.raises(PalmDBError):
            db.recompute_offsets()

    def test_add_resource_to_record_database(self):
        with pytest.raises(PalmDBError):
            PalmDatabase().add_resource("code", 0, b"")

    def test_new_resource_database(self):
        db = PalmDatabase(name="App", db_type="appl", creator="tEsT", resource=True)
        db.add_resource("code", 0, b"\x4e\x75")

        data = db.to_bytes()
        assert data[32:34] == b"\x00\x01"
        assert len(data) == 78 + 10 + 2


# =============================================================================
# Category Tests
# =============================================================================

class TestCategories:
    """Tests for record categories."""

    def test_category_name(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)

        assert db[0x6F0001].category == "Unfiled"
        assert db[0x6F0002].category == "Fuel"

    def test_no_table(self, sample_pdb):
        db = PalmDatabase.from_bytes(sample_pdb)
        assert db[0x6F0002].category is None

    def test_set_by_name(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        blob = db[0x6F0002]
        blob.category = "Service"

        assert blob.entry.attributes == 0x42

        reloaded = PalmDatabase.from_bytes(db.to_bytes(), standard_appinfo=True)
        assert reloaded[0x6F0002].category == "Service"

    def test_set_unknown_name(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        with pytest.raises(CategoryNotFoundError):
            db[0x6F0001].category = "Holidays"

    def test_set_by_index(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        blob = db[0x6F0001]
        blob.category = 2
        assert blob.category == "Service"

        with pytest.raises(IndexOutOfRangeError):
            blob.category = 16

    def test_resource_has_no_category(self, sample_prc):
        db = PalmDatabase.from_bytes(sample_prc)
        with pytest.raises(PalmDBError):
            db["code", 0].category

    def test_add_record_with_category(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        blob = db.add_record(b"fill up", attributes=0x40, category="Fuel")
        assert blob.entry.attributes == 0x41

    def test_blob_does_not_keep_database_alive(self, standard_pdb):
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True)
        blob = db[0x6F0002]
        assert blob.database is db

        del db
        gc.collect()

        assert blob.database is None
        assert blob.category is None


# =============================================================================
# Decoder Tests
# =============================================================================

class TestDecoders:
    """Tests for registered structured decoders."""

    @pytest.fixture
    def registry(self) -> DecoderRegistry:
        registry = DecoderRegistry()
        registry.register("test", BlobKind.RECORD, TextRecord)
        return registry

    def test_records_decoded(self, make_pdb, registry):
        data = make_pdb([(1, 0, b"hello"), (2, 0, b"world")])
        db = PalmDatabase.from_bytes(data, registry=registry)

        assert db[1].is_decoded
        assert db[1].view == TextRecord("hello")
        assert db.to_bytes() == data
        assert db.get_info()["decoded_count"] == 2

    def test_changed_view_is_reencoded(self, make_pdb, registry):
        db = PalmDatabase.from_bytes(make_pdb([(1, 0, b"hello"), (2, 0, b"world")]), registry=registry)
        db[1].view.text = "hello, palm"

        reloaded = PalmDatabase.from_bytes(db.to_bytes())
        assert reloaded[1].data == b"hello, palm"
        assert reloaded[2].data == b"world"

    def test_decoder_failure(self, sample_pdb, registry):
        with pytest.raises(DecoderParseError) as exc_info:
            PalmDatabase.from_bytes(sample_pdb, registry=registry)

        error = exc_info.value
        assert error.key == 0x6F0003
        assert error.offset == 120
        assert error.length == 32
        assert isinstance(error.__cause__, ValueError)

    def test_decoding_disabled(self, sample_pdb, registry):
        config = PalmDBConfig(decode_blobs=False)
        db = PalmDatabase.from_bytes(sample_pdb, registry=registry, config=config)

        assert not any(blob.is_decoded for blob in db)
        assert db.to_bytes() == sample_pdb

    def test_type_id_overrides_creator(self, make_pdb, registry):
        data = make_pdb([(1, 0, b"hello")], creator=b"othr")

        assert not PalmDatabase.from_bytes(data, registry=registry)[1].is_decoded
        assert PalmDatabase.from_bytes(data, registry=registry, type_id="test")[1].is_decoded

    def test_appinfo_rest_decoded(self, standard_pdb):
        registry = DecoderRegistry()
        registry.register("test", BlobKind.APPINFO, Units)

        # "\x00\x02rest" decodes to 2 and re-encodes to "\x00\x02"
        db = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True, registry=registry)

        assert isinstance(db.appinfo.payload, DecodedPayload)
        assert db.appinfo.payload.view.units == 2
        assert db.appinfo.get_size() == 278

    def test_add_structured_record(self, registry):
        db = PalmDatabase(creator="test", registry=registry)
        db.add_record(TextRecord("memo"), unique_id=1)

        reloaded = PalmDatabase.from_bytes(db.to_bytes(), registry=registry)
        assert reloaded[1].view == TextRecord("memo")


# =============================================================================
# Info Tests
# =============================================================================

class TestInfo:
    """Tests for get_info()."""

    def test_info(self, standard_pdb):
        info = PalmDatabase.from_bytes(standard_pdb, standard_appinfo=True).get_info()

        assert info["name"] == "TestDB"
        assert info["kind"] == "record"
        assert info["entry_count"] == 3
        assert info["appinfo_size"] == 282
        assert info["sortinfo_size"] == 4
        assert info["data_size"] == 12 + 6 + 32
        assert info["created"] == "1970-01-01T00:00:00"
        assert info["backed_up"] is None
        assert info["modification_number"] == 7


# =============================================================================
# Configuration Tests
# =============================================================================

class TestConfig:
    """Tests for PalmDBConfig."""

    def test_defaults(self, monkeypatch):
        for name in ("PALMDB_ENCODING", "PALMDB_DECODE", "PALMDB_VERBOSE"):
            monkeypatch.delenv(name, raising=False)

        config = PalmDBConfig.from_env()
        assert config.text_encoding == "latin-1"
        assert config.decode_blobs
        assert not config.verbose

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PALMDB_ENCODING", "cp1252")
        monkeypatch.setenv("PALMDB_DECODE", "off")
        monkeypatch.setenv("PALMDB_VERBOSE", "yes")

        config = PalmDBConfig.from_env()
        assert config.text_encoding == "cp1252"
        assert not config.decode_blobs
        assert config.verbose

    def test_unknown_encoding(self):
        with pytest.raises(LookupError):
            PalmDBConfig(text_encoding="no-such-codec")

    def test_encoding_used_for_names(self, make_pdb):
        data = make_pdb([], name="Caf\xe9".encode("cp1252"))
        db = PalmDatabase.from_bytes(data, config=PalmDBConfig(text_encoding="cp1252"))
        assert db.name == "Caf\xe9"
