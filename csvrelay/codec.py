"""
CSV transcoding.

Responsibilities:
- byte decoding of uploaded files (encoding detection + newline normalization)
- naive CSV decoding into header/row records
- CSV encoding of computed result records

The format is deliberately naive: no quoted-field parsing on input, no
configurable delimiter, and the only escaping on output is wrapping values
that contain the delimiter in double quotes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from charset_normalizer import from_bytes

from .errors import EncodeEmptyError
from .rules import DELIMITER, LINE_TERMINATOR, QUOTE

logger = logging.getLogger(__name__)

HeaderSet = Tuple[str, ...]
RowRecord = Dict[str, str]
ResultValue = Union[str, int, float, None]
ResultRecord = Mapping[str, ResultValue]


def decode_bytes(raw: bytes) -> str:
    """
    Turn uploaded bytes into text with LF line endings.

    Rules:
    - Detect encoding best-effort via charset-normalizer.
    - A UTF-8 BOM is stripped rather than kept as part of the first header.
    - If decode fails, try UTF-8, then fall back to UTF-8 with replacement
      characters so the pipeline always gets text.
    """
    if not raw:
        return ""

    match = from_bytes(raw).best()
    decode_used = match.encoding if match is not None else "utf-8"

    if raw.startswith(b"\xef\xbb\xbf") and decode_used.lower().replace("-", "_") in ("utf_8", "utf8"):
        decode_used = "utf-8-sig"

    try:
        text = raw.decode(decode_used)
    except (UnicodeDecodeError, LookupError):
        try:
            text = raw.decode("utf-8")
            decode_used = "utf-8"
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="replace")
            decode_used = "utf-8 (replace)"

    logger.debug("Decoded %d bytes using %s", len(raw), decode_used)
    return _normalize_newlines(text)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _split_fields(line: str) -> List[str]:
    return [field.strip() for field in line.split(DELIMITER)]


def decode_csv(text: str) -> Tuple[HeaderSet, List[RowRecord]]:
    """
    Decode CSV text into a header set and row records.

    The first line is the header line. Every later line that is not blank
    after trimming becomes one record with exactly the header keys: short
    lines are padded with empty strings, fields past the header count are
    dropped. Never raises; empty text gives no headers and no rows.
    """
    if not text:
        return (), []

    lines = _normalize_newlines(text).split("\n")
    headers: HeaderSet = tuple(_split_fields(lines[0]))

    rows: List[RowRecord] = []
    for line in lines[1:]:
        line = line.strip()
        if not line:
            continue

        values = _split_fields(line)
        row: RowRecord = {}
        for index, header in enumerate(headers):
            row[header] = values[index] if index < len(values) else ""
        rows.append(row)

    return headers, rows


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _escape(text: str) -> str:
    # only the delimiter triggers quoting; embedded quotes/newlines pass through
    if DELIMITER in text:
        return f"{QUOTE}{text}{QUOTE}"
    return text


def encode_csv(records: Sequence[ResultRecord]) -> str:
    """
    Encode result records as CSV text.

    The header row is the first record's keys in their own order, applied to
    every record: missing fields render empty, unknown fields are dropped.

    Raises:
        EncodeEmptyError: if there are no records.
    """
    if not records:
        raise EncodeEmptyError("no data to export")

    columns = list(records[0].keys())

    lines = [DELIMITER.join(_escape(name) for name in columns)]
    for record in records:
        lines.append(DELIMITER.join(_escape(_format_value(record.get(name))) for name in columns))

    return "".join(line + LINE_TERMINATOR for line in lines)
