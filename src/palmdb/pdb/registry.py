"""
Structured Decoder Registry
===========================

Most Palm databases are stored as opaque bytes. Applications that know
the layout of their records can register a decoder class here; blobs of
matching databases are then decoded into structured views on load and
re-encoded on dump.

Decoder Protocol
----------------
A decoder is a class (typically a dataclass) with:

- ``from_bytes(data: bytes)``: classmethod returning a view instance
- ``to_bytes()``: instance method returning the encoded bytes

This is the same shape as the header and entry codecs in
palmdb.pdb.records.

Keys
----
Decoders are keyed by (type id, BlobKind). The type id is a free-form
string; PalmDatabase uses its ``type_id`` argument, or the creator code
when none is given.

Usage
-----
    >>> from palmdb.pdb.registry import BlobKind, register_decoder
    >>> @register_decoder("fUeL", BlobKind.RECORD)
    ... @dataclass
    ... class FuelRecord:
    ...     odometer: int
    ...     @classmethod
    ...     def from_bytes(cls, data): ...
    ...     def to_bytes(self): ...
"""

from enum import Enum
from typing import Callable, Optional
import logging

# Logger for this module
logger = logging.getLogger(__name__)


class BlobKind(Enum):
    """What part of a database a decoder handles."""
    RECORD = "record"
    RESOURCE = "resource"
    APPINFO = "appinfo"


class DecoderRegistry:
    """
    Mapping from (type id, BlobKind) to a decoder class.

    A lookup miss is the normal case and returns None.
    """

    def __init__(self) -> None:
        self._decoders: dict[tuple[str, BlobKind], type] = {}

    def register(self, type_id: str, kind: BlobKind, decoder: type) -> None:
        """
        Register a decoder class.

        Raises:
            TypeError: If the class lacks from_bytes/to_bytes
        """
        if not callable(getattr(decoder, "from_bytes", None)) or not callable(
            getattr(decoder, "to_bytes", None)
        ):
            raise TypeError(f"{decoder!r} must define from_bytes() and to_bytes()")

        key = (type_id, kind)
        if key in self._decoders:
            logger.debug(f"Replacing decoder for {type_id!r}/{kind.value}")
        self._decoders[key] = decoder

    def unregister(self, type_id: str, kind: BlobKind) -> None:
        """Remove a decoder; unknown keys are ignored."""
        self._decoders.pop((type_id, kind), None)

    def lookup(self, type_id: Optional[str], kind: BlobKind) -> Optional[type]:
        """Return the decoder for (type_id, kind), or None."""
        if type_id is None:
            return None
        return self._decoders.get((type_id, kind))

    def decoder(self, type_id: str, kind: BlobKind) -> Callable[[type], type]:
        """Class decorator form of register()."""
        def wrap(cls: type) -> type:
            self.register(type_id, kind, cls)
            return cls
        return wrap

    def clear(self) -> None:
        self._decoders.clear()

    def __contains__(self, key: tuple[str, BlobKind]) -> bool:
        return key in self._decoders

    def __len__(self) -> int:
        return len(self._decoders)


# Process-wide registry used when a database is not given its own
default_registry = DecoderRegistry()

register_decoder = default_registry.decoder
