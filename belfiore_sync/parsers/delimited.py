"""Delimiter-separated feed parsing."""

from __future__ import annotations

import csv
import re

from belfiore_sync.common.models import DelimitedOptions

_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")


def decode_content(content: bytes | str, encoding: str) -> str:
    if isinstance(content, str):
        return content
    codec = encoding.strip().lower().replace("_", "-")
    if codec in {"utf-8", "utf8"}:
        codec = "utf-8-sig"
    return content.decode(codec, errors="replace")


class DelimitedTableParser:
    def __init__(self, options: DelimitedOptions | None = None) -> None:
        self.options = options or DelimitedOptions()

    def _split_fields(self, line: str) -> list[str]:
        dialect = {"delimiter": self.options.delimiter, "strict": False}
        if self.options.enclosure:
            # Backslashes are data when enclosed; doubled enclosures escape quotes.
            dialect["quotechar"] = self.options.enclosure
        else:
            dialect["quoting"] = csv.QUOTE_NONE
            dialect["escapechar"] = self.options.escape or None
        return next(csv.reader([line], **dialect), [])

    def parse(self, content: bytes | str) -> tuple[list[str], list[dict[str, str] | list[str]]]:
        text = decode_content(content, self.options.encoding)
        lines = [line for line in _LINE_SPLIT_RE.split(text) if line.strip()]
        if not lines:
            return [], []

        if not self.options.header_row:
            return [], [self._split_fields(line) for line in lines]

        header = [name.strip().lower() for name in self._split_fields(lines[0])]
        rows: list[dict[str, str] | list[str]] = []
        for line in lines[1:]:
            fields = self._split_fields(line)
            # Tolerate a few malformed lines instead of failing the feed.
            if len(fields) != len(header):
                continue
            rows.append(dict(zip(header, fields)))
        return header, rows
