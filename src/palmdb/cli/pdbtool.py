"""
palmdb - Palm Database Command-Line Interface
=============================================

This module implements the command-line interface for inspecting,
extracting and rewriting Palm OS database files (.pdb / .prc).

Commands
--------
- **info**: Show header fields and sizes
- **list**: List records or resources
- **extract**: Write each blob (and the AppInfo/SortInfo blocks) to files
- **repack**: Load and write back a database with recomputed offsets
- **validate**: Check that a database loads and round-trips

Usage Examples
--------------
Show database information:
    $ palmdb info MemoDB.pdb

List records with their categories:
    $ palmdb --standard-appinfo list MemoDB.pdb

Extract all records:
    $ palmdb extract -o ./out/ MemoDB.pdb

Rewrite a file with a clean layout:
    $ palmdb repack -o fixed.pdb broken.pdb
"""

from pathlib import Path
from typing import Optional
import logging
import re
import warnings

import click

from palmdb import __version__
from palmdb.config import PalmDBConfig
from palmdb.pdb import DataBlob, PalmDatabase, RecordAttributes
from palmdb.cli.errors import ExitCode, handle_cli_exception


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores options common to every command.
    """

    def __init__(self) -> None:
        self.config = PalmDBConfig.from_env()
        self.standard_appinfo: bool = False

    @property
    def verbose(self) -> bool:
        return self.config.verbose

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def open_database(self, path: Path) -> PalmDatabase:
        return PalmDatabase.from_file(
            path,
            standard_appinfo=self.standard_appinfo,
            config=self.config,
        )


pass_context = click.make_pass_decorator(Context, ensure=True)


def format_key(blob: DataBlob) -> str:
    """Human-readable blob key."""
    if blob.is_record:
        return f"0x{blob.key:06X}"
    resource_type, resource_id = blob.key
    return f"{resource_type}:{resource_id}"


def format_record_flags(attributes: int) -> str:
    """Render record attribute flags as a short string (e.g. "D-S-")."""
    flags = (
        (RecordAttributes.DELETE, "D"),
        (RecordAttributes.DIRTY, "M"),
        (RecordAttributes.BUSY, "B"),
        (RecordAttributes.SECRET, "S"),
    )
    return "".join(letter if attributes & flag else "-" for flag, letter in flags)


def blob_filename(blob: DataBlob) -> str:
    """File name used when extracting a blob."""
    if blob.is_record:
        return f"record_{blob.key:06x}.bin"
    resource_type, resource_id = blob.key
    safe_type = re.sub(r"[^A-Za-z0-9]", "_", resource_type)
    return f"{safe_type}_{resource_id:05d}.bin"


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.version_option(__version__, "--version", "-V", prog_name="palmdb")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output (debug logging)")
@click.option(
    "--standard-appinfo",
    is_flag=True,
    help="Parse the AppInfo block as a standard category table",
)
@click.option(
    "--encoding",
    default=None,
    help="Text encoding for names (default: latin-1 or $PALMDB_ENCODING)",
)
@click.option("--raw", is_flag=True, help="Do not decode records with registered decoders")
@pass_context
def main(ctx: Context, verbose: bool, standard_appinfo: bool, encoding: Optional[str], raw: bool) -> None:
    """
    Palm OS database tool.

    Inspect, extract and rewrite Palm database files (.pdb, .prc).

    \b
    Commands:
      info      Show header fields and sizes
      list      List records or resources
      extract   Write blobs to files
      repack    Rewrite with recomputed offsets
      validate  Check that a file loads and round-trips

    \b
    Examples:
      palmdb info MemoDB.pdb
      palmdb --standard-appinfo list MemoDB.pdb
      palmdb extract -o ./out/ MemoDB.pdb
    """
    if verbose:
        ctx.config.verbose = True
    if encoding:
        try:
            ctx.config = PalmDBConfig(
                text_encoding=encoding,
                decode_blobs=ctx.config.decode_blobs,
                verbose=ctx.config.verbose,
            )
        except LookupError:
            raise click.BadParameter(f"unknown encoding {encoding!r}", param_hint="--encoding")
    if raw:
        ctx.config.decode_blobs = False
    ctx.standard_appinfo = standard_appinfo
    ctx.setup_logging()


# =============================================================================
# Info Command
# =============================================================================

@main.command("info")
@click.argument("pdb_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_context
def cmd_info(ctx: Context, pdb_file: Path) -> None:
    """
    Show detailed information about a database file.

    \b
    Example:
      palmdb info MemoDB.pdb
    """
    try:
        db = ctx.open_database(pdb_file)
        info = db.get_info()

        click.echo(f"Database Information: {pdb_file}")
        click.echo("=" * 40)
        click.echo(f"Name:        {info['name']}")
        click.echo(f"Kind:        {info['kind']} database")
        click.echo(f"Type:        {info['db_type']}")
        click.echo(f"Creator:     {info['creator']}")
        click.echo(f"Version:     {info['version']}")
        click.echo(f"Attributes:  {info['attributes']}")
        click.echo(f"Created:     {info['created']}")
        click.echo(f"Modified:    {info['modified']}")
        click.echo(f"Backed up:   {info['backed_up'] or 'never'}")
        click.echo(f"Mod number:  {info['modification_number']}")
        click.echo()
        click.echo("Contents:")
        click.echo(f"  Entries:     {info['entry_count']}")
        click.echo(f"  Decoded:     {info['decoded_count']}")
        click.echo(f"  Data:        {info['data_size']} bytes")
        click.echo(f"  AppInfo:     {info['appinfo_size']} bytes")
        click.echo(f"  SortInfo:    {info['sortinfo_size']} bytes")

        if db.appinfo is not None and db.appinfo.is_standard:
            names = [name for name in db.appinfo.categories.names() if name]
            click.echo(f"  Categories:  {', '.join(names) if names else '(none)'}")

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# List Command
# =============================================================================

@main.command("list")
@click.argument("pdb_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_context
def cmd_list(ctx: Context, pdb_file: Path) -> None:
    """
    List the records or resources of a database.

    \b
    Example:
      palmdb list MemoDB.pdb

    \b
    Output format:
      Key        Flags  Category      Offset       Size
      0x6F0001   ----   Unfiled          104         42
    """
    try:
        db = ctx.open_database(pdb_file)

        if db.is_resource_db:
            click.echo(f"{'Resource':<12} {'Offset':>10} {'Size':>10}")
            click.echo("-" * 34)
            for blob in db:
                click.echo(f"{format_key(blob):<12} {blob.entry.offset:>10} {blob.get_size():>10}")
        else:
            click.echo(f"{'Key':<10} {'Flags':<6} {'Category':<16} {'Offset':>8} {'Size':>8}")
            click.echo("-" * 52)
            for blob in db:
                category = blob.category
                if category is None:
                    category = str(blob.entry.category)
                click.echo(
                    f"{format_key(blob):<10} {format_record_flags(blob.entry.attributes):<6} "
                    f"{category:<16} {blob.entry.offset:>8} {blob.get_size():>8}"
                )

        if ctx.verbose:
            click.echo("-" * 52)
            click.echo(f"Total: {len(db)} entries")

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Extract Command
# =============================================================================

@main.command("extract")
@click.argument("pdb_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o", "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Output directory (default: current directory)",
)
@pass_context
def cmd_extract(ctx: Context, pdb_file: Path, output: Path) -> None:
    """
    Extract every blob of a database into separate files.

    Records are written as record_<uniqueid>.bin, resources as
    <type>_<id>.bin. The AppInfo and SortInfo blocks, when present, are
    written as appinfo.bin and sortinfo.bin.

    \b
    Example:
      palmdb extract -o ./out/ MemoDB.pdb
    """
    try:
        output.mkdir(parents=True, exist_ok=True)
        db = ctx.open_database(pdb_file)

        count = 0
        for blob in db:
            out_path = output / blob_filename(blob)
            out_path.write_bytes(blob.to_bytes())
            if ctx.verbose:
                click.echo(f"  {format_key(blob)} -> {out_path}")
            count += 1

        if db.appinfo is not None:
            (output / "appinfo.bin").write_bytes(db.appinfo.to_bytes())
        if db.sortinfo is not None:
            (output / "sortinfo.bin").write_bytes(db.sortinfo.to_bytes())

        click.echo(f"Extracted {count} entries to {output}")

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Repack Command
# =============================================================================

@main.command("repack")
@click.argument("pdb_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Output database path (required)",
)
@pass_context
def cmd_repack(ctx: Context, pdb_file: Path, output: Path) -> None:
    """
    Load a database and write it back with recomputed offsets.

    \b
    Example:
      palmdb repack -o clean.pdb MemoDB.pdb
    """
    try:
        db = ctx.open_database(pdb_file)
        bytes_written = db.to_file(output)
        click.echo(f"Wrote {output} ({len(db)} entries, {bytes_written} bytes)")

    except Exception as e:
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Validate Command
# =============================================================================

@main.command("validate")
@click.argument("pdb_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_context
def cmd_validate(ctx: Context, pdb_file: Path) -> None:
    """
    Validate a database file.

    Checks:
    - Header and index are complete
    - Block and record offsets are in a valid order
    - Registered decoders accept their records
    - Writing the database back and reloading it gives the same content

    \b
    Example:
      palmdb validate MemoDB.pdb
    """
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            db = ctx.open_database(pdb_file)
            reloaded = PalmDatabase.from_bytes(
                db.to_bytes(),
                standard_appinfo=ctx.standard_appinfo,
                config=ctx.config,
            )

        if db != reloaded:
            click.echo("Validation FAILED:")
            click.echo("  ERROR: content changed after writing and reloading")
            raise SystemExit(ExitCode.FORMAT_ERROR)

        if caught:
            click.echo("Validation passed with warnings:")
            for warning in caught:
                click.echo(f"  WARNING: {warning.message}")
        else:
            click.echo(f"Validation PASSED: {pdb_file}")

    except SystemExit:
        raise
    except Exception as e:
        click.echo("Validation FAILED:")
        handle_cli_exception(e, ctx.verbose)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    main()
