"""
File ingestion: CSV/TSV/TXT/JSON/JSONL files and archives of them.

Each parsed file becomes one Table whose columns are discovered from
the header (delimited text) or from the keys of the records (JSON).
Failures are collected per file so one bad file never aborts a batch.
"""

import csv
import gzip
import io
import json
import logging
import re
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from docjoin.catalog.models import Row, Table
from docjoin.common.metrics import files_ingested_total

logger = logging.getLogger(__name__)

DELIMITED_EXTENSIONS = {"csv": ",", "tsv": "\t"}
TEXT_EXTENSIONS = {"csv", "tsv", "txt", "json", "jsonl"}
ARCHIVE_SUFFIXES = (".zip", ".tar", ".tar.gz", ".tgz", ".gz")
DELIMITER_CANDIDATES = [",", "\t", ";", "|"]

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")
_MISSING = object()


class ParseError(Exception):
    """Exception raised when a file cannot be turned into rows."""
    pass


@dataclass
class ParsingOptions:
    """Per-file overrides for delimited text."""
    delimiter: str = "auto"  # auto, csv or tsv
    skip_rows: int = 0


@dataclass
class ParseResult:
    """Tables parsed from a batch of files plus per-file error messages."""
    tables: List[Table] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def slugify(value: str) -> str:
    """Lowercase, non-alphanumerics collapsed to single hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def unique_id(base: str, used: Set[str]) -> str:
    """First of base, base-1, base-2 ... not in `used`; records the choice."""
    base = base or "table"
    candidate = base
    counter = 1
    while candidate in used:
        candidate = f"{base}-{counter}"
        counter += 1
    used.add(candidate)
    return candidate


def detect_delimiter(text: str) -> str:
    """Most frequent candidate delimiter in the first non-blank line, default comma."""
    first = next((line for line in text.splitlines() if line.strip()), "")
    best, best_count = ",", 0
    for candidate in DELIMITER_CANDIDATES:
        count = first.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def coerce_value(value: Optional[str]) -> Any:
    """
    Dynamic typing for delimited cells.

    Integers and floats become numbers, true/false become booleans and
    empty cells become None; everything else stays a string.
    """
    if value is None or value == "":
        return None
    if value in ("true", "TRUE", "True"):
        return True
    if value in ("false", "FALSE", "False"):
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def parse_delimited_text(content: str, delimiter: str, skip_rows: int = 0) -> List[Row]:
    """
    Parse header-first delimited text into rows.

    Blank lines and lines starting with '#' or '//' are ignored;
    `skip_rows` drops leading lines before the header.
    """
    lines = content.splitlines()[skip_rows:]
    kept = [
        line for line in lines
        if line.strip() and not line.strip().startswith(("#", "//"))
    ]
    if not kept:
        return []

    reader = csv.DictReader(io.StringIO("\n".join(kept)), delimiter=delimiter, restval=_MISSING)
    rows: List[Row] = []
    for record in reader:
        row = {
            key: coerce_value(value)
            for key, value in record.items()
            if key is not None and value is not _MISSING
        }
        if row:
            rows.append(row)
    return rows


def parse_json_text(content: str) -> List[Row]:
    """Rows from a JSON array, a {"data": [...]} envelope, or a single object."""
    parsed = json.loads(content)
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        if isinstance(parsed.get("data"), list):
            return parsed["data"]
        return [parsed]
    raise ParseError("Unsupported JSON structure")


def parse_jsonl_text(content: str) -> List[Row]:
    return [json.loads(line) for line in content.splitlines() if line.strip()]


def discover_columns(rows: Iterable[Row]) -> List[str]:
    """Union of row keys in first-seen order."""
    seen: Dict[str, None] = {}
    for row in rows:
        if isinstance(row, dict):
            for key in row:
                seen.setdefault(key, None)
    return list(seen)


def _extension(name: str) -> str:
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def _is_archive(name: str) -> bool:
    return name.lower().endswith(ARCHIVE_SUFFIXES)


def _is_hidden(member_name: str) -> bool:
    parts = PurePosixPath(member_name).parts
    return any(part.startswith(".") or part == "__MACOSX" for part in parts)


class ByteBudget:
    """
    Running allowance of bytes extracted from archives.

    One budget is shared by every archive of a batch, nested archives
    included. `limit=None` means unlimited.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self.remaining = limit

    def take(self, size: int, name: str) -> None:
        if self.remaining is None:
            return
        if size > self.remaining:
            raise ParseError(f"Archive {name} expands beyond {self.limit} bytes")
        self.remaining -= size

    def read_limit(self) -> int:
        """Bytes to request from a stream with no declared size; -1 reads all."""
        return -1 if self.remaining is None else self.remaining + 1


def expand_archive(
    name: str,
    data: bytes,
    budget: Optional[ByteBudget] = None,
) -> Iterator[Tuple[str, bytes]]:
    """
    Yield (file name, bytes) for every regular member of an archive.

    Nested archives are expanded recursively; directory entries and
    hidden/metadata members are skipped. Member sizes are charged to
    `budget` before they are read.

    Raises:
        ParseError: If the archive cannot be read or exceeds the budget
    """
    budget = budget or ByteBudget()
    lower = name.lower()
    try:
        if lower.endswith(".zip"):
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                members = []
                for info in archive.infolist():
                    if info.is_dir() or _is_hidden(info.filename):
                        continue
                    budget.take(info.file_size, name)
                    members.append((info.filename, archive.read(info)))
        elif lower.endswith((".tar", ".tar.gz", ".tgz")):
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
                members = []
                for info in archive.getmembers():
                    if not info.isfile() or _is_hidden(info.name):
                        continue
                    budget.take(info.size, name)
                    extracted = archive.extractfile(info)
                    if extracted is not None:
                        members.append((info.name, extracted.read()))
        elif lower.endswith(".gz"):
            with gzip.GzipFile(fileobj=io.BytesIO(data)) as stream:
                content = stream.read(budget.read_limit())
            budget.take(len(content), name)
            members = [(name[:-3], content)]
        else:
            raise ParseError(f"Not an archive: {name}")
    except (zipfile.BadZipFile, tarfile.TarError, OSError, EOFError) as e:
        raise ParseError(f"Failed reading archive {name}: {e}") from e

    for member_name, member_data in members:
        base = PurePosixPath(member_name).name
        if _is_archive(base):
            yield from expand_archive(base, member_data, budget)
        else:
            yield base, member_data


def parse_rows(name: str, text: str, options: Optional[ParsingOptions] = None) -> Tuple[List[Row], str]:
    """
    Parse the text of one file according to its extension.

    Returns:
        (rows, source type)

    Raises:
        ParseError: Unsupported extension
        ValueError: Malformed JSON content
    """
    options = options or ParsingOptions()
    ext = _extension(name)
    if ext in ("csv", "tsv", "txt"):
        if options.delimiter == "csv":
            delimiter = ","
        elif options.delimiter == "tsv":
            delimiter = "\t"
        elif ext in DELIMITED_EXTENSIONS:
            delimiter = DELIMITED_EXTENSIONS[ext]
        else:
            delimiter = detect_delimiter("\n".join(text.splitlines()[options.skip_rows:]))
        return parse_delimited_text(text, delimiter, options.skip_rows), ext
    if ext in ("json", "jsonl"):
        rows = parse_jsonl_text(text) if ext == "jsonl" else parse_json_text(text)
        if not all(isinstance(row, dict) for row in rows):
            raise ParseError("JSON records must be objects")
        return rows, ext
    raise ParseError(f"Unsupported file type: {name}")


def parse_files(
    files: Iterable[Tuple[str, bytes]],
    used_ids: Optional[Set[str]] = None,
    options: Optional[Dict[str, ParsingOptions]] = None,
    max_expanded_bytes: Optional[int] = None,
) -> ParseResult:
    """
    Parse a batch of uploaded files into tables.

    Args:
        files: (file name, raw bytes) pairs; archives are expanded
        used_ids: Table ids already taken in the project
        options: Per-file parsing overrides keyed by file name
        max_expanded_bytes: Ceiling on the bytes extracted from all
            archives of the batch; unlimited when None

    Returns:
        ParseResult with one table per parsed file and collected errors
    """
    result = ParseResult()
    used = used_ids if used_ids is not None else set()
    options = options or {}
    budget = ByteBudget(max_expanded_bytes)

    pending: List[Tuple[str, bytes]] = []
    for name, data in files:
        if _is_archive(name):
            try:
                pending.extend(list(expand_archive(name, data, budget)))
            except ParseError as e:
                files_ingested_total.labels(source_type="archive", status="failure").inc()
                logger.warning(str(e))
                result.errors.append(str(e))
        else:
            pending.append((name, data))

    for name, data in pending:
        ext = _extension(name)
        if ext not in TEXT_EXTENSIONS:
            result.errors.append(f"Unsupported file type: {name}")
            continue
        try:
            text = data.decode("utf-8-sig")
            rows, source_type = parse_rows(name, text, options.get(name))
        except (ParseError, ValueError, csv.Error) as e:
            files_ingested_total.labels(source_type=ext, status="failure").inc()
            logger.warning(f"Failed parsing {name}: {e}")
            result.errors.append(f"Failed parsing {name}: {e}")
            continue

        if not rows:
            files_ingested_total.labels(source_type=ext, status="failure").inc()
            result.errors.append(f"No rows parsed for {name}")
            continue

        table_base = name.rsplit(".", 1)[0] if "." in name else name
        result.tables.append(Table(
            id=unique_id(slugify(table_base), used),
            name=table_base,
            columns=discover_columns(rows),
            rows=rows,
            file_name=name,
            source_text=text,
            source_type=source_type,
        ))
        files_ingested_total.labels(source_type=ext, status="success").inc()

    logger.info(f"Parsed {len(result.tables)} tables with {len(result.errors)} errors")
    return result


def parse_paths(paths: Iterable[str], used_ids: Optional[Set[str]] = None) -> ParseResult:
    """Read files from disk and parse them with parse_files."""
    files = []
    for path in paths:
        p = Path(path)
        files.append((p.name, p.read_bytes()))
    return parse_files(files, used_ids=used_ids)
