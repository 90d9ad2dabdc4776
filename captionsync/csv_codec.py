"""Minimal line-oriented CSV codec for the caption sidecar.

Only the quoting needed to round-trip caption text is implemented:
fields containing a quote, comma, CR or LF are wrapped in double quotes
with inner quotes doubled. The reader works one physical line at a time,
so quoted fields spanning several lines are rejected as malformed.
"""
from __future__ import annotations
from typing import BinaryIO, Iterator, List, Optional, Sequence, TextIO

# Hard bound for a single physical line (bytes, terminator excluded).
MAX_LINE_BYTES = 1024 * 1024

_NEEDS_QUOTES = ('"', ",", "\n", "\r")


class MalformedRecordError(ValueError):
    """A sidecar line could not be decoded."""

    def __init__(self, message: str, line_no: Optional[int] = None):
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


def encode_field(field: str) -> str:
    if not any(ch in field for ch in _NEEDS_QUOTES):
        return field
    return '"' + field.replace('"', '""') + '"'


def encode_record(record: Sequence[str]) -> str:
    return ",".join(encode_field(f) for f in record) + "\n"


def decode_line(line: str) -> List[str]:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]

    fields: List[str] = []
    field: List[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                field.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(field))
            field = []
        else:
            field.append(ch)
        i += 1

    if in_quotes:
        raise MalformedRecordError("unterminated quoted field")
    fields.append("".join(field))
    return fields


class CSVLineWriter:
    """Writes encoded records to a text handle opened with newline=""."""

    def __init__(self, handle: TextIO):
        self._handle = handle
        self.rows = 0

    def write(self, record: Sequence[str]) -> None:
        self._handle.write(encode_record(record))
        self.rows += 1

    def flush(self) -> None:
        self._handle.flush()


class CSVLineReader:
    """Reads one record per physical line from a binary handle.

    read() returns None once the input is exhausted. Any undecodable line
    raises MalformedRecordError.
    """

    def __init__(self, handle: BinaryIO, max_line_bytes: int = MAX_LINE_BYTES):
        self._handle = handle
        self._max = max_line_bytes
        self.line_no = 0

    def read(self) -> Optional[List[str]]:
        # room for a CRLF terminator after a line of exactly max bytes
        raw = self._handle.readline(self._max + 2)
        if not raw:
            return None
        self.line_no += 1
        content = raw[:-1] if raw.endswith(b"\n") else raw
        if content.endswith(b"\r"):
            content = content[:-1]
        if len(content) > self._max:
            raise MalformedRecordError(f"line exceeds {self._max} bytes", self.line_no)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRecordError(f"invalid UTF-8: {e}", self.line_no) from e
        try:
            return decode_line(text)
        except MalformedRecordError as e:
            raise MalformedRecordError(str(e), self.line_no) from e

    def __iter__(self) -> Iterator[List[str]]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record
