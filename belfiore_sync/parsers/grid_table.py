"""Parser for ANPR-style grid tables with multi-line cells and nested attributes.

A table looks like::

    +-------------+-----------+
    | DENOMINAZ.  | TIPO      |
    +=============+===========+
    | AFGHANISTAN | Stato     |
    |             |           |
    | - CODAT:    |           |
    |   Z200      |           |
    +-------------+-----------+

The first border fixes the column offsets, the ``=`` border marks the header
row and every later border closes one (possibly multi-line) row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from belfiore_sync.common.errors import SourceNotFound, SourceUnavailable

_BORDER_RE = re.compile(r"^\+[-=+]+$")
_INLINE_SPACE_RE = re.compile(r"[\t\x0b\x0c\r ]+")
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")
NESTED_MARKER = "\n - "

Row = dict[str, str] | list[str]


def is_border_line(line: str) -> bool:
    stripped = line.lstrip()
    return (
        stripped.startswith("+")
        and ("-" in stripped or "=" in stripped)
        and _BORDER_RE.match(stripped.strip()) is not None
    )


def is_header_separator(line: str) -> bool:
    return "=" in line


def is_content_line(line: str) -> bool:
    return line.lstrip().startswith("|")


def detect_boundaries(border_line: str) -> list[tuple[int, int]]:
    positions = [idx for idx, char in enumerate(border_line) if char == "+"]
    if len(positions) < 2:
        return []
    return [(start + 1, end) for start, end in zip(positions, positions[1:])]


def extract_cells(line: str, boundaries: list[tuple[int, int]]) -> list[str]:
    return [line[start:end] if start < len(line) else "" for start, end in boundaries]


def finalize_cell(cell: str) -> str:
    # Newlines joining continuation lines are not in the collapsed class.
    return _INLINE_SPACE_RE.sub(" ", cell).strip()


def finalize_cells(cells: list[str]) -> list[str]:
    return [finalize_cell(cell) for cell in cells]


def expand_nested_attributes(row: dict[str, str]) -> dict[str, str]:
    expanded: dict[str, str] = {}
    for key, value in row.items():
        if NESTED_MARKER not in value:
            expanded[key] = value
            continue

        main_value, *parts = value.split(NESTED_MARKER)
        expanded[key] = main_value.strip()
        for part in parts:
            sub_key, sep, sub_value = part.partition(":")
            if sep:
                expanded[sub_key.strip()] = sub_value.strip()
    return expanded


def _is_blank_row(row: Row) -> bool:
    values = row.values() if isinstance(row, dict) else row
    return all(not str(value).strip() for value in values)


@dataclass
class _TableState:
    boundaries: list[tuple[int, int]] = field(default_factory=list)
    buffer: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    @property
    def in_table(self) -> bool:
        return bool(self.boundaries)


class GridTableParser:
    def parse(self, text: str) -> tuple[list[str], list[Row]]:
        return self.parse_lines(_LINE_SPLIT_RE.split(text))

    def parse_bytes(self, data: bytes, encoding: str = "utf-8") -> tuple[list[str], list[Row]]:
        codec = "utf-8-sig" if encoding.lower().replace("_", "-") in {"utf-8", "utf8"} else encoding
        return self.parse(data.decode(codec, errors="replace"))

    def parse_file(self, path: Path, encoding: str = "utf-8") -> tuple[list[str], list[Row]]:
        if not str(path).strip():
            raise SourceNotFound("Grid table path cannot be empty")
        if not path.is_file():
            raise SourceNotFound(f"File not found: {path}")
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise SourceUnavailable(f"Unable to read file: {path}") from exc
        return self.parse_bytes(data, encoding)

    def parse_lines(self, lines: list[str]) -> tuple[list[str], list[Row]]:
        state = _TableState()

        for raw_line in lines:
            line = raw_line.rstrip("\r\n")

            if is_border_line(line):
                if not state.in_table:
                    # Seeking: a usable border starts the table.
                    state.boundaries = detect_boundaries(line)
                    state.buffer = []
                    continue
                if state.buffer:
                    cells = finalize_cells(state.buffer)
                    if is_header_separator(line) and not state.headers:
                        state.headers = cells
                    else:
                        state.rows.append(self._build_row(cells, state.headers))
                    state.buffer = []
                continue

            if state.in_table and is_content_line(line):
                self._accumulate(state, extract_cells(line, state.boundaries))

        if state.in_table and state.buffer:
            state.rows.append(self._build_row(finalize_cells(state.buffer), state.headers))

        headers = [header for header in state.headers if header != ""]
        rows = [row for row in state.rows if not _is_blank_row(row)]
        return headers, rows

    def _accumulate(self, state: _TableState, cells: list[str]) -> None:
        if not state.buffer:
            state.buffer = cells
            return
        for idx, cell in enumerate(cells):
            if idx >= len(state.buffer):
                state.buffer.append(cell)
            elif cell.strip():
                state.buffer[idx] = state.buffer[idx].rstrip() + "\n" + cell

    def _build_row(self, cells: list[str], headers: list[str]) -> Row:
        if not headers or len(cells) != len(headers):
            return cells
        row = dict(zip((header.strip() for header in headers), cells))
        return expand_nested_attributes(row)
