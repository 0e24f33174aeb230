"""
The two user actions: pick a CSV file, then compute and export.

State that a UI would hold (selected file, decoded rows, loading flag, last
result) lives on the session object, one session per user flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .capabilities import FilePicker, TextReader
from .codec import HeaderSet, ResultRecord, RowRecord, decode_csv
from .compute import ComputeClient
from .errors import CapabilityError, ComputeError, InputError
from .models import ExportReport
from .orchestrator import ExportOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    file_name: str = ""
    headers: HeaderSet = ()
    rows: List[RowRecord] = field(default_factory=list)
    loading: bool = False
    status: str = ""
    last_results: Optional[List[ResultRecord]] = None
    last_export: Optional[ExportReport] = None


class CsvSession:
    def __init__(self, compute: ComputeClient, orchestrator: ExportOrchestrator):
        self.compute = compute
        self.orchestrator = orchestrator
        self.state = SessionState()

    async def pick_file(self, picker: FilePicker, reader: TextReader) -> SessionState:
        """
        Pick a CSV file, read it and decode it into rows.

        Raises:
            InputError: if the pick was cancelled or the file could not be read.
                The session status carries the message to show.
        """
        handle = await picker.pick()
        if handle is None:
            self.state.status = "File selection was cancelled."
            raise InputError(self.state.status)

        try:
            text = await reader.read(handle)
        except (CapabilityError, InputError, OSError) as e:
            logger.error("Error reading %s: %s", handle.name, e)
            self.state.status = "Error: Could not load file. Please try another CSV file."
            raise InputError(self.state.status) from e

        headers, rows = decode_csv(text)
        self.state.file_name = handle.name
        self.state.headers = headers
        self.state.rows = rows
        self.state.status = f"Selected file: {handle.name}"
        logger.info("Loaded %s: %d columns, %d rows", handle.name, len(headers), len(rows))
        return self.state

    async def compute_and_export(self) -> ExportReport:
        """
        Send the decoded rows for computation and export the results.

        Raises:
            ComputeError: if the compute call fails; nothing is exported.
        """
        self.state.loading = True
        try:
            try:
                results = await self.compute.compute(self.state.rows)
            except ComputeError as e:
                self.state.status = f"Error computing results: {e.reason}"
                raise
            self.state.last_results = results

            report = await self.orchestrator.export(results)
            self.state.last_export = report
            self.state.status = report.message
            return report
        finally:
            self.state.loading = False
