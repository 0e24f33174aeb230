"""
Fixed CSV and export rules.

This file exists to make the naive format's limits explicit and enforceable.
"""

DELIMITER = ","
LINE_TERMINATOR = "\n"
QUOTE = '"'

CSV_MIME_TYPE = "text/csv"
CSV_EXTENSION = ".csv"

# Decoded text handed to the share sheet and written to storage.
OUTPUT_ENCODING = "utf-8"

# How many decoded rows the /decode endpoint echoes back.
PREVIEW_ROWS = 2
