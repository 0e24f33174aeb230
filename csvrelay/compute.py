"""
Client for the remote compute endpoint.

POSTs decoded rows as {"points_json": [...]} and expects a JSON array of
result records back, or an object wrapping that array under "data".
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .codec import ResultRecord, RowRecord
from .errors import ComputeError

logger = logging.getLogger(__name__)


def parse_results(payload: Any) -> List[Dict[str, Any]]:
    """Pull the result records out of a compute response body."""
    if isinstance(payload, dict):
        payload = payload.get("data")

    if not isinstance(payload, list):
        raise ComputeError("Unexpected response: expected a JSON array of results")

    for item in payload:
        if not isinstance(item, dict):
            raise ComputeError("Unexpected response: result rows must be JSON objects")

    return payload


class ComputeClient:
    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        max_rows: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.max_rows = max_rows
        self.transport = transport

    def points(self, rows: Sequence[RowRecord]) -> List[RowRecord]:
        if self.max_rows is None:
            return list(rows)
        return list(rows[: self.max_rows])

    async def compute(self, rows: Sequence[RowRecord]) -> List[ResultRecord]:
        """
        Send rows to the compute endpoint.

        Raises:
            ComputeError: on network failure, non-2xx status or a malformed body.
        """
        points = self.points(rows)
        logger.info("Sending %d rows to %s", len(points), self.url)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.url, json={"points_json": points})
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise ComputeError(f"Request failed: {e}") from e

        if not response.is_success:
            raise ComputeError(f"HTTP error! Status: {response.status_code}", status=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise ComputeError(f"Invalid JSON in response: {e}", status=response.status_code) from e

        results = parse_results(payload)
        logger.info("Compute returned %d results", len(results))
        return results
