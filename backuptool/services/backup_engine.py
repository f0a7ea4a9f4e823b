"""MySQL dump engines.

Two interchangeable engines produce the same kind of artifact, a deflated ZIP:

- ``mysqldump``: runs the system client binary, archives its single SQL file
- ``builtin``: walks the schema with PyMySQL, one SQL file per table

Both report progress through a ``(percent, status, current_table)`` callback
and raise ``BackupEngineError`` on any failure.
"""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import pymysql
import pymysql.cursors

from backuptool.core.errors import BackupEngineError
from backuptool.lib.redaction import redact

ENGINE_MYSQLDUMP = "mysqldump"
ENGINE_BUILTIN = "builtin"

MYSQLDUMP_ENTRY_NAME = "mysqldump_backup.sql"
DATABASE_INFO_ENTRY_NAME = "00_database_info.sql"
INSERT_BATCH_SIZE = 1000

_MYSQLDUMP_OPTIONS = (
    "--add-drop-database",
    "--add-drop-table",
    "--triggers",
    "--routines",
    "--events",
    "--single-transaction",
)
# CREATE_NO_WINDOW keeps a console from flashing up on Windows
_NO_WINDOW_FLAGS = 0x08000000 if sys.platform == "win32" else 0

ProgressCallback = Callable[[int, str, Optional[str]], None]

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackupRequest:
    host: str
    port: int
    username: str
    password: str
    database: str
    output_path: str
    engine: Optional[str] = None


def is_mysqldump_available(which: Callable[[str], Optional[str]] = shutil.which) -> bool:
    return which(ENGINE_MYSQLDUMP) is not None


def select_engine(preference: Optional[str], mysqldump_available: bool) -> str:
    """Explicit ``mysqldump`` needs the binary; anything unset auto-selects."""
    if preference == ENGINE_MYSQLDUMP:
        if not mysqldump_available:
            raise BackupEngineError(
                "The mysqldump engine was selected but no mysqldump command is available.",
                remediation="Install the MySQL client tools or switch the engine to 'builtin'.",
            )
        return ENGINE_MYSQLDUMP
    if preference == ENGINE_BUILTIN:
        return ENGINE_BUILTIN
    return ENGINE_MYSQLDUMP if mysqldump_available else ENGINE_BUILTIN


def backup_mysql(
    request: BackupRequest,
    progress: ProgressCallback,
    *,
    timeout: Optional[float] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
    run: Callable[..., Any] = subprocess.run,
    connect: Callable[..., Any] = pymysql.connect,
) -> str:
    """Dump ``request.database`` into a ZIP at ``request.output_path``.

    Returns the output path. Blocking; call it from a background thread.
    """
    engine = select_engine(request.engine, is_mysqldump_available(which))
    _logger.info(
        "Backup engine starting",
        extra={"engine": engine, "host": request.host, "port": request.port, "database": request.database},
    )
    output = Path(request.output_path)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BackupEngineError(f"Could not create the output directory: {exc}") from exc

    try:
        if engine == ENGINE_MYSQLDUMP:
            _backup_with_mysqldump(request, progress, timeout=timeout, run=run)
        else:
            _backup_with_builtin(request, progress, timeout=timeout, connect=connect)
    except BaseException:
        _discard_partial(output)
        raise
    _logger.info("Backup engine finished", extra={"engine": engine, "output": str(output)})
    return str(output)


def build_mysqldump_command(request: BackupRequest, result_file: str) -> list[str]:
    """Command line for mysqldump. The password travels in MYSQL_PWD, never here."""
    return [
        ENGINE_MYSQLDUMP,
        f"--host={request.host}",
        f"--port={request.port}",
        f"--user={request.username}",
        *_MYSQLDUMP_OPTIONS,
        "--databases",
        request.database,
        "--result-file",
        result_file,
    ]


# mysqldump -----------------------------------------------------------
def _backup_with_mysqldump(
    request: BackupRequest,
    progress: ProgressCallback,
    *,
    timeout: Optional[float],
    run: Callable[..., Any],
) -> None:
    progress(5, "Preparing mysqldump backup...", None)
    with tempfile.TemporaryDirectory(prefix="mysqlbackup-") as tmp:
        sql_file = Path(tmp) / "full_backup.sql"
        progress(10, "Connecting to database...", None)

        env = os.environ.copy()
        if request.password:
            env["MYSQL_PWD"] = request.password
        cmd = build_mysqldump_command(request, str(sql_file))

        progress(20, "Exporting database with mysqldump...", None)
        try:
            result = run(
                cmd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
                creationflags=_NO_WINDOW_FLAGS,
            )
        except subprocess.TimeoutExpired as exc:
            raise BackupEngineError(f"mysqldump did not finish within {exc.timeout:g} seconds") from exc
        except OSError as exc:
            raise BackupEngineError(f"Could not run mysqldump: {exc}") from exc
        if result.returncode != 0:
            stderr = redact((result.stderr or "").strip())
            raise BackupEngineError(f"mysqldump exited with code {result.returncode}: {stderr}")

        progress(60, "Export finished, creating ZIP archive...", None)
        try:
            with zipfile.ZipFile(request.output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                progress(70, "Compressing backup data...", None)
                archive.write(sql_file, arcname=MYSQLDUMP_ENTRY_NAME)
                progress(90, "Finalizing ZIP archive...", None)
        except OSError as exc:
            raise BackupEngineError(f"Could not write the backup archive: {exc}") from exc
    progress(100, "Backup complete", None)


# builtin -------------------------------------------------------------
def _backup_with_builtin(
    request: BackupRequest,
    progress: ProgressCallback,
    *,
    timeout: Optional[float],
    connect: Callable[..., Any],
) -> None:
    progress(5, "Preparing built-in backup...", None)
    with tempfile.TemporaryDirectory(prefix="mysqlbackup-") as tmp:
        workdir = Path(tmp)
        progress(10, "Connecting to database...", None)
        try:
            conn = connect(
                host=request.host,
                port=request.port,
                user=request.username,
                password=request.password,
                database=request.database,
                charset="utf8mb4",
                connect_timeout=10,
                read_timeout=timeout,
                write_timeout=timeout,
            )
        except Exception as exc:
            progress(0, "Database connection failed", None)
            raise BackupEngineError(f"Could not connect to the database: {exc}") from exc

        try:
            tables = _dump_schema(conn, request.database, workdir, progress)
        except BackupEngineError:
            raise
        except Exception as exc:
            raise BackupEngineError(f"Dumping tables failed: {exc}") from exc
        finally:
            try:
                conn.close()
            except Exception:
                _logger.debug("Closing backup connection failed", exc_info=True)

        progress(70, "Tables dumped, creating ZIP archive...", None)
        try:
            with zipfile.ZipFile(request.output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                progress(75, "Compressing database info...", None)
                archive.write(workdir / DATABASE_INFO_ENTRY_NAME, arcname=DATABASE_INFO_ENTRY_NAME)
                total = len(tables)
                for index, table in enumerate(tables):
                    progress(75 + int(index / total * 20), "Compressing table data...", table)
                    name = _table_entry_name(table)
                    archive.write(workdir / name, arcname=name)
                progress(95, "Finalizing ZIP archive...", None)
        except OSError as exc:
            raise BackupEngineError(f"Could not write the backup archive: {exc}") from exc
    progress(100, "Backup complete", None)


def _dump_schema(conn: Any, database: str, workdir: Path, progress: ProgressCallback) -> list[str]:
    progress(15, "Analyzing database structure...", None)
    quoted_db = _quote_identifier(database)
    (workdir / DATABASE_INFO_ENTRY_NAME).write_text(
        "-- MySQL dump by MySQL Backup Tool\n"
        f"-- Database: {database}\n\n"
        f"CREATE DATABASE IF NOT EXISTS {quoted_db} "
        "DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci;\n"
        f"USE {quoted_db};\n",
        encoding="utf-8",
    )

    with conn.cursor() as cursor:
        cursor.execute("SHOW TABLES")
        tables = [row[0] for row in cursor.fetchall()]

    total = len(tables)
    progress(20, "Dumping table structure and data..." if total else "Database has no tables", None)
    for index, table in enumerate(tables):
        base = 20 + int(index / total * 50)
        progress(base, "Dumping table...", table)
        with open(workdir / _table_entry_name(table), "w", encoding="utf-8") as out:
            _dump_table_structure(conn, table, out)
            _dump_table_data(conn, table, out, lambda: progress(base, "Dumping table data...", table))
    return tables


def _dump_table_structure(conn: Any, table: str, out: Any) -> None:
    quoted = _quote_identifier(table)
    with conn.cursor() as cursor:
        cursor.execute(f"SHOW CREATE TABLE {quoted}")
        row = cursor.fetchone()
    if not row or len(row) < 2:
        raise BackupEngineError(f"Could not read the structure of table {table}")
    out.write(f"\n-- Table structure: {table}\n\n")
    out.write(f"DROP TABLE IF EXISTS {quoted};\n\n")
    out.write(f"{row[1]};\n\n")


def _dump_table_data(conn: Any, table: str, out: Any, on_batch: Callable[[], None]) -> None:
    quoted = _quote_identifier(table)
    out.write(f"\n-- Table data: {table}\n\n")
    out.write(f"LOCK TABLES {quoted} WRITE;\n")
    # Unbuffered cursor so large tables stream instead of loading into memory
    with conn.cursor(pymysql.cursors.SSCursor) as cursor:
        cursor.execute(f"SELECT * FROM {quoted}")
        columns = ", ".join(_quote_identifier(col[0]) for col in cursor.description or ())
        while True:
            batch = cursor.fetchmany(INSERT_BATCH_SIZE)
            if not batch:
                break
            _write_insert(conn, out, quoted, columns, batch)
            if len(batch) == INSERT_BATCH_SIZE:
                on_batch()
    out.write("UNLOCK TABLES;\n")


def _write_insert(conn: Any, out: Any, quoted_table: str, columns: str, rows: Sequence[Sequence[Any]]) -> None:
    out.write(f"INSERT INTO {quoted_table} ({columns}) VALUES\n")
    last = len(rows) - 1
    for i, row in enumerate(rows):
        values = ", ".join(conn.escape(value) for value in row)
        out.write(f"({values}){';' if i == last else ','}\n")


# Internals -----------------------------------------------------------
def _quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _table_entry_name(table: str) -> str:
    return f"table_{table}.sql"


def _discard_partial(output: Path) -> None:
    try:
        output.unlink(missing_ok=True)
    except OSError:
        _logger.warning("Could not remove partial backup", extra={"output": str(output)})


__all__ = [
    "BackupRequest",
    "ProgressCallback",
    "backup_mysql",
    "build_mysqldump_command",
    "is_mysqldump_available",
    "select_engine",
    "ENGINE_MYSQLDUMP",
    "ENGINE_BUILTIN",
]
