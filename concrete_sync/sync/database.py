"""
Database export and import through the MySQL client tools

mysqldump and mysql receive their credentials through a temporary
``--defaults-extra-file`` so that the password never shows up in the
process list or in the console output.
"""

import gzip
import os
import shlex
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Iterator, List, Optional, Sequence

from tqdm import tqdm

from concrete_sync.exceptions import ExportFailed, ImportFailed, excerpt
from concrete_sync.settings import DatabaseCredentials
from concrete_sync.utils.filesystem import ensure_dir_exists, format_size

CHUNK_SIZE = 1024 * 1024
GZIP_MAGIC = b"\x1f\x8b"


class ImportState(Enum):
    PREPARING = "preparing"
    IMPORTING = "importing"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ExportResult:
    path: Path
    size_bytes: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    table_count: int
    warnings: List[str] = field(default_factory=list)
    state: ImportState = ImportState.DONE


@dataclass
class DumpStream:
    """
    Running mysqldump: its stdout, and the warnings collected once it exits
    """

    stdout: IO[bytes]
    warnings: List[str] = field(default_factory=list)


def _option_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@contextmanager
def defaults_extra_file(credentials: DatabaseCredentials) -> Iterator[str]:
    """
    Writes a private [client] option file and removes it afterwards

    Args:
        credentials: Connection parameters

    Yields:
        str: Path of the option file (mode 0600)
    """
    fd, path = tempfile.mkstemp(prefix="concrete-sync-", suffix=".cnf")
    try:
        os.chmod(path, 0o600)
        with os.fdopen(fd, "w") as option_file:
            option_file.write("[client]\n")
            option_file.write(f"host={_option_value(credentials.host)}\n")
            option_file.write(f"user={_option_value(credentials.user)}\n")
            option_file.write(f"password={_option_value(credentials.password)}\n")
            if credentials.port:
                option_file.write(f"port={credentials.port}\n")
        yield path
    finally:
        if os.path.exists(path):
            os.unlink(path)


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _stderr_lines(stderr_file) -> List[str]:
    stderr_file.seek(0)
    text = stderr_file.read().decode("utf-8", errors="replace")
    return [line.strip() for line in text.splitlines() if line.strip()]


class DatabaseExporter:
    """
    Produces compressed dumps with mysqldump
    """

    def __init__(self, dump_options: Sequence[str] = (), verbose: bool = False):
        """
        Initializes the exporter

        Args:
            dump_options: Extra mysqldump flags (e.g. --set-gtid-purged=OFF)
            verbose: Show the executed command
        """
        self.dump_options = list(dump_options)
        self.verbose = verbose

    def command(self, credentials: DatabaseCredentials, exclude_tables: Sequence[str],
                defaults_file: str) -> List[str]:
        cmd = [
            "mysqldump",
            f"--defaults-extra-file={defaults_file}",
            "--single-transaction",
            "--no-tablespaces",
        ]
        cmd.extend(self.dump_options)
        for table in exclude_tables:
            cmd.append(f"--ignore-table={credentials.name}.{table}")
        cmd.append(credentials.name)
        return cmd

    @contextmanager
    def stream(self, credentials: DatabaseCredentials, exclude_tables: Sequence[str] = ()) -> Iterator[DumpStream]:
        """
        Runs mysqldump and yields its uncompressed output stream

        Raises:
            ExportFailed: When mysqldump exits with a nonzero status
        """
        with defaults_extra_file(credentials) as defaults_file, tempfile.TemporaryFile() as stderr_file:
            cmd = self.command(credentials, exclude_tables, defaults_file)
            if self.verbose:
                print(f"🔄 Executing: {' '.join(shlex.quote(arg) for arg in cmd)}")

            try:
                process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=stderr_file)
            except OSError as e:
                raise ExportFailed(127, str(e), remediation="Make sure mysqldump is installed and on the PATH")

            dump = DumpStream(stdout=process.stdout)
            try:
                yield dump
            except BaseException:
                process.kill()
                process.wait()
                raise
            finally:
                process.stdout.close()

            returncode = process.wait()
            lines = _stderr_lines(stderr_file)
            if returncode != 0:
                raise ExportFailed(
                    returncode,
                    excerpt("\n".join(lines)),
                    remediation="Check the DB_* credentials and that the database server is reachable",
                )
            dump.warnings.extend(lines)

    def export(self, credentials: DatabaseCredentials, exclude_tables: Sequence[str],
               destination: Path) -> ExportResult:
        """
        Dumps the database into a gzip file

        Args:
            credentials: Connection parameters
            exclude_tables: Tables passed as --ignore-table
            destination: Target .sql.gz file

        Returns:
            ExportResult: Path, compressed size and mysqldump warnings

        Raises:
            ExportFailed: When mysqldump fails; the partial file is removed
        """
        destination = Path(destination)
        ensure_dir_exists(destination.parent)

        print(f"📤 Exporting database {credentials.describe()}...")
        if exclude_tables:
            print(f"   Excluding tables: {' '.join(exclude_tables)}")

        try:
            with self.stream(credentials, exclude_tables) as dump:
                with gzip.open(destination, "wb") as compressed, \
                        tqdm(unit="B", unit_scale=True, desc="Dumping database") as progress:
                    for chunk in iter(lambda: dump.stdout.read(CHUNK_SIZE), b""):
                        compressed.write(chunk)
                        progress.update(len(chunk))
        except BaseException:
            if destination.exists():
                destination.unlink()
            raise

        for warning in dump.warnings:
            print(f"⚠️ mysqldump: {warning}")

        size = destination.stat().st_size
        print(f"✅ Database exported: {destination.name} ({format_size(size)})")
        return ExportResult(path=destination, size_bytes=size, warnings=list(dump.warnings))


class DatabaseImporter:
    """
    Replaces a database with the contents of a dump

    The import walks PREPARING -> IMPORTING -> VERIFYING -> DONE; any fatal
    error moves it to FAILED and stops.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.state = ImportState.PREPARING

    def _mysql(self, defaults_file: str, *args: str, database: Optional[str] = None) -> subprocess.CompletedProcess:
        cmd = ["mysql", f"--defaults-extra-file={defaults_file}", *args]
        if database:
            cmd.append(database)
        if self.verbose:
            print(f"🔄 Executing: {' '.join(shlex.quote(arg) for arg in cmd)}")
        return subprocess.run(cmd, capture_output=True, text=True, check=False)

    def _fail(self, step: ImportState, exit_code: Optional[int], stderr: str, remediation: Optional[str] = None):
        self.state = ImportState.FAILED
        raise ImportFailed(step.value, exit_code, excerpt(stderr), remediation=remediation)

    def import_dump(self, credentials: DatabaseCredentials, dump_path: Path) -> ImportResult:
        """
        Drops, recreates and loads the database from a dump

        Args:
            credentials: Connection parameters
            dump_path: Plain or gzip-compressed SQL dump

        Returns:
            ImportResult: Number of tables found after the import, and warnings

        Raises:
            ImportFailed: When creating, loading or verifying the database fails
        """
        dump_path = Path(dump_path)
        warnings: List[str] = []
        database = quote_identifier(credentials.name)

        with defaults_extra_file(credentials) as defaults_file:
            self.state = ImportState.PREPARING
            print(f"📥 Importing {dump_path.name} into {credentials.describe()}...")

            dropped = self._mysql(defaults_file, "-e", f"DROP DATABASE IF EXISTS {database};")
            if dropped.returncode != 0:
                # The database may simply not exist yet
                warning = f"Could not drop database {credentials.name}: {excerpt(dropped.stderr, 200)}"
                print(f"⚠️ {warning}")
                warnings.append(warning)

            created = self._mysql(defaults_file, "-e", f"CREATE DATABASE {database};")
            if created.returncode != 0:
                self._fail(ImportState.PREPARING, created.returncode, created.stderr,
                           remediation="Check that the database user may create databases")

            self.state = ImportState.IMPORTING
            returncode, stderr = self._load(defaults_file, credentials.name, dump_path)
            if returncode != 0:
                self._fail(ImportState.IMPORTING, returncode, stderr,
                           remediation="The dump may be corrupt; try an older snapshot tag")

            self.state = ImportState.VERIFYING
            query = ("SELECT COUNT(*) FROM information_schema.tables "
                     f"WHERE table_schema = '{credentials.name.replace(chr(39), chr(39) * 2)}';")
            counted = self._mysql(defaults_file, "-N", "-B", "-e", query)
            if counted.returncode != 0:
                self._fail(ImportState.VERIFYING, counted.returncode, counted.stderr)
            try:
                table_count = int(counted.stdout.strip().splitlines()[-1])
            except (ValueError, IndexError):
                self._fail(ImportState.VERIFYING, None, f"unexpected output: {counted.stdout!r}")

        if table_count == 0:
            warning = "Import reported success but the database has no tables (empty or corrupt dump?)"
            print(f"⚠️ {warning}")
            warnings.append(warning)
        else:
            print(f"✅ Database imported ({table_count} tables)")

        self.state = ImportState.DONE
        return ImportResult(table_count=table_count, warnings=warnings, state=self.state)

    def _load(self, defaults_file: str, database: str, dump_path: Path):
        """
        Streams the dump into mysql, gunzipping it when needed

        Returns:
            Tuple[int, str]: mysql exit code and stderr
        """
        with open(dump_path, "rb") as header_file:
            is_gzipped = header_file.read(2) == GZIP_MAGIC
        if is_gzipped:
            print("📦 Detected compressed SQL file (gzip)")

        opener = gzip.open if is_gzipped else open
        cmd = ["mysql", f"--defaults-extra-file={defaults_file}", database]

        read_error = None
        with tempfile.TemporaryFile() as stderr_file:
            process = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=stderr_file)
            try:
                with opener(dump_path, "rb") as source, \
                        tqdm(total=dump_path.stat().st_size if not is_gzipped else None,
                             unit="B", unit_scale=True, desc="Importing database") as progress:
                    try:
                        for chunk in iter(lambda: source.read(CHUNK_SIZE), b""):
                            process.stdin.write(chunk)
                            progress.update(len(chunk))
                    except BrokenPipeError:
                        # mysql exited early; its exit code tells why
                        pass
                    except (OSError, EOFError) as e:
                        # Truncated or corrupt dump: stop mysql before it sees end of input
                        read_error = e
                        process.kill()
            finally:
                try:
                    process.stdin.close()
                except BrokenPipeError:
                    pass
                returncode = process.wait()

            if read_error is not None:
                self._fail(ImportState.IMPORTING, None, f"Could not read {dump_path.name}: {read_error}",
                           remediation="The dump may be corrupt; try an older snapshot tag")

            return returncode, "\n".join(_stderr_lines(stderr_file))
