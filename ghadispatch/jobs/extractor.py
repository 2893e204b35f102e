"""Exported variables embedded in workflow logs.

A workflow exports a value by printing a line of the form::

    EXPORT: key=value

GitHub prefixes every log line with an ISO 8601 timestamp, so the grammar
accepted per line is::

    line   := [timestamp " "] marker ":" [" "] body
    body   := key "=" value
    key    := one or more characters except "=" and whitespace
    value  := anything up to the end of the line (may be empty, may contain "=")

Lines without the marker are ignored. Lines carrying the marker whose body is
not ``key=value`` are reported as ``ExtractionError`` and otherwise skipped.
Later assignments to the same key win.
"""

import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Final
from typing import Iterable

DEFAULT_EXPORT_MARKER: Final = "EXPORT"

_TIMESTAMP_PREFIX = r"(?:\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?\s+)?"
_KEY_REGEX = re.compile(r"^[^=\s]+$")


@dataclass(frozen=True)
class ExtractionError:
    file: str
    line_number: int
    line: str
    reason: str


@dataclass
class ExtractionResult:
    exports: dict[str, str] = field(default_factory=dict)
    errors: list[ExtractionError] = field(default_factory=list)


def marker_regex(marker: str) -> re.Pattern[str]:
    return re.compile(rf"^{_TIMESTAMP_PREFIX}{re.escape(marker)}:\s?(?P<body>.*)$")


def parse_export_body(body: str) -> str | tuple[str, str]:
    match body.split("=", maxsplit=1):
        case [_]:
            return f'expected "key=value", but found no "=" in "{body}"'
        case [key, value]:
            key = key.strip()
            if not key:
                return "key is empty"
            if _KEY_REGEX.match(key) is None:
                return f'key "{key}" contains whitespace'
            return key, value
        case _:
            return f'cannot parse "{body}"'


def extract_exports_from_lines(
    lines: Iterable[str],
    file_name: str,
    result: ExtractionResult,
    marker: str = DEFAULT_EXPORT_MARKER,
) -> ExtractionResult:
    regex = marker_regex(marker)
    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        line_match = regex.match(line)
        if line_match is None:
            continue
        parsed = parse_export_body(line_match.group("body").rstrip())
        if isinstance(parsed, str):
            result.errors.append(ExtractionError(file_name, line_number, line, parsed))
            continue
        key, value = parsed
        result.exports[key] = value
    return result


def log_files(log_directory: Path) -> list[Path]:
    # The archive has one combined file per job at the top level, plus one file per
    # step in sub-directories. Prefer the combined ones so nothing is read twice.
    top_level = sorted(p for p in log_directory.glob("*.txt") if p.is_file())
    if top_level:
        return top_level
    return sorted(p for p in log_directory.rglob("*.txt") if p.is_file())


def extract_exports(
    log_directory: Path,
    marker: str = DEFAULT_EXPORT_MARKER,
) -> ExtractionResult:
    result = ExtractionResult()
    for log_file in log_files(log_directory):
        with log_file.open("r", encoding="utf-8", errors="replace") as f:
            extract_exports_from_lines(
                f, str(log_file.relative_to(log_directory)), result, marker
            )
    return result
