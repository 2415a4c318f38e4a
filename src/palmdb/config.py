"""
Library Configuration
=====================

Settings that affect how databases are read and written. Configuration
can come from:
- Default values (defined here)
- Environment variables
- Explicit construction by the caller
"""

from dataclasses import dataclass
import codecs
import os


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class PalmDBConfig:
    """
    Configuration for loading and dumping Palm databases.

    Attributes:
        text_encoding: Encoding of database and category names
            (default: latin-1, which round-trips every byte)
        decode_blobs: Consult the decoder registry on load (default: True).
            When False every record and AppInfo payload stays raw.
        verbose: Enable debug logging in the command-line tool
    """

    text_encoding: str = "latin-1"
    decode_blobs: bool = True
    verbose: bool = False

    def __post_init__(self) -> None:
        # Fail early on a typo rather than on the first name
        codecs.lookup(self.text_encoding)

    @classmethod
    def from_env(cls) -> "PalmDBConfig":
        """
        Create a PalmDBConfig from environment variables.

        Environment variables (all optional):
            PALMDB_ENCODING: Text encoding for names (e.g. "cp1252")
            PALMDB_DECODE: "0"/"false" to keep every blob raw
            PALMDB_VERBOSE: "1"/"true" for debug logging

        Returns:
            PalmDBConfig with values from environment variables
        """
        config = cls()

        if encoding := os.environ.get("PALMDB_ENCODING"):
            codecs.lookup(encoding)
            config.text_encoding = encoding

        if decode := os.environ.get("PALMDB_DECODE"):
            if decode.lower() in _FALSE_VALUES:
                config.decode_blobs = False
            elif decode.lower() in _TRUE_VALUES:
                config.decode_blobs = True

        if verbose := os.environ.get("PALMDB_VERBOSE"):
            config.verbose = verbose.lower() in _TRUE_VALUES

        return config
