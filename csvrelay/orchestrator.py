"""
Export orchestration.

Delivers encoded CSV to the user by walking an explicit state machine over
the available platform capabilities. Each strategy is attempted at most once
per run; every outcome is appended to the run's attempt log, and the next
state comes from the transition table below rather than from the shape of
the code.

Cascade, in priority order:
    write-primary -> media-asset (device platforms only) -> share-direct
    -> write-fallback -> share-fallback -> prompt -> share-content
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .capabilities import MediaGallery, RecoveryPrompt, ShareSheet, StorageWriter
from .codec import ResultRecord, encode_csv
from .errors import CapabilityUnavailable, EncodeEmptyError
from .models import (
    AttemptEntry,
    AttemptOutcome,
    DeliveryStatus,
    ExportArtifact,
    ExportReport,
    ExportState,
    FailureReason,
    Location,
    LocationKind,
)
from .rules import CSV_EXTENSION, CSV_MIME_TYPE

logger = logging.getLogger(__name__)

S = ExportState

# (state, step succeeded) -> next state
TRANSITIONS: Dict[Tuple[ExportState, bool], ExportState] = {
    (S.IDLE, True): S.CONVERTING,
    (S.CONVERTING, True): S.WRITING_PRIMARY,
    (S.CONVERTING, False): S.FAILED_TERMINAL,
    (S.WRITING_PRIMARY, True): S.PLATFORM_BRANCH,
    (S.WRITING_PRIMARY, False): S.SHARE_DIRECT,
    (S.PLATFORM_BRANCH, True): S.MEDIA_ASSET_ATTEMPT,
    (S.PLATFORM_BRANCH, False): S.SHARE_DIRECT,
    (S.MEDIA_ASSET_ATTEMPT, True): S.DELIVERED,
    (S.MEDIA_ASSET_ATTEMPT, False): S.SHARE_DIRECT,
    (S.SHARE_DIRECT, True): S.DELIVERED,
    (S.SHARE_DIRECT, False): S.WRITE_FALLBACK_LOCATION,
    (S.WRITE_FALLBACK_LOCATION, True): S.SHARE_FALLBACK_FILE,
    (S.WRITE_FALLBACK_LOCATION, False): S.SHARE_CONTENT_ONLY,
    (S.SHARE_FALLBACK_FILE, True): S.DELIVERED,
    (S.SHARE_FALLBACK_FILE, False): S.PROMPT_USER,
    (S.PROMPT_USER, True): S.SHARE_CONTENT_ONLY,
    (S.PROMPT_USER, False): S.FAILED_TERMINAL,
    (S.SHARE_CONTENT_ONLY, True): S.DELIVERED,
    (S.SHARE_CONTENT_ONLY, False): S.FAILED_TERMINAL,
}

# Overrides that apply while no file has been written in the run.
NO_FILE_TRANSITIONS: Dict[Tuple[ExportState, bool], ExportState] = {
    (S.WRITE_FALLBACK_LOCATION, False): S.FAILED_TERMINAL,
}

# State that led to FAILED_TERMINAL -> reported reason
FAILURE_REASONS: Dict[ExportState, FailureReason] = {
    S.CONVERTING: FailureReason.ENCODE_EMPTY,
    S.WRITE_FALLBACK_LOCATION: FailureReason.WRITE_DENIED,
    S.PROMPT_USER: FailureReason.USER_ABANDONED,
    S.SHARE_CONTENT_ONLY: FailureReason.ALL_STRATEGIES_EXHAUSTED,
}

FAILURE_MESSAGES: Dict[FailureReason, str] = {
    FailureReason.ENCODE_EMPTY: "No data to export.",
    FailureReason.WRITE_DENIED: "Could not write the export file to any location.",
    FailureReason.ALL_STRATEGIES_EXHAUSTED: "Every export option failed.",
    FailureReason.USER_ABANDONED: "Export abandoned.",
}

TERMINAL_STATES = frozenset({S.DELIVERED, S.FAILED_TERMINAL})


class _Declined(Exception):
    """A strategy failed for a known reason; the message becomes the log detail."""


@dataclass
class ExportRun:
    """Run-scoped context for one export."""

    state: ExportState = S.IDLE
    records: Sequence[ResultRecord] = ()
    artifact: Optional[ExportArtifact] = None
    attempts: List[AttemptEntry] = field(default_factory=list)
    file_path: Optional[str] = None
    reason: Optional[FailureReason] = None
    message: str = ""
    claimed: List[str] = field(default_factory=list)

    def attempted(self, strategy: str) -> bool:
        return any(entry.strategy == strategy for entry in self.attempts)


class ExportOrchestrator:
    # file names picked by runs still in flight, shared by every orchestrator
    _claimed_names: Set[str] = set()

    def __init__(
        self,
        storage: StorageWriter,
        share_sheet: ShareSheet,
        prompt: RecoveryPrompt,
        *,
        primary_dir: str,
        fallback_dir: str,
        gallery: Optional[MediaGallery] = None,
        has_media_gallery: bool = True,
        prefix: str = "export",
        album_name: str = "CSV Exports",
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.share_sheet = share_sheet
        self.prompt = prompt
        self.gallery = gallery
        self.has_media_gallery = has_media_gallery and gallery is not None
        self.primary_dir = primary_dir
        self.fallback_dir = fallback_dir
        self.prefix = prefix
        self.album_name = album_name
        self.clock = clock
        self._lock = asyncio.Lock()

        self._handlers: Dict[ExportState, Callable[[ExportRun], Awaitable[bool]]] = {
            S.IDLE: self._start,
            S.CONVERTING: self._convert,
            S.WRITING_PRIMARY: self._write_primary,
            S.PLATFORM_BRANCH: self._platform_branch,
            S.MEDIA_ASSET_ATTEMPT: self._media_asset,
            S.SHARE_DIRECT: self._share_direct,
            S.WRITE_FALLBACK_LOCATION: self._write_fallback,
            S.SHARE_FALLBACK_FILE: self._share_fallback,
            S.PROMPT_USER: self._prompt_user,
            S.SHARE_CONTENT_ONLY: self._share_content,
        }

    async def export(self, records: Sequence[ResultRecord]) -> ExportReport:
        """Encode result records and deliver them."""
        return await self._run(ExportRun(records=records))

    async def export_text(self, csv_text: str) -> ExportReport:
        """Deliver already-encoded CSV text. Empty text fails like an empty result set."""
        if not csv_text:
            return await self._run(ExportRun(state=S.CONVERTING))
        run = ExportRun(state=S.WRITING_PRIMARY, artifact=self._new_artifact(csv_text))
        return await self._run(run)

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------

    async def _run(self, run: ExportRun) -> ExportReport:
        async with self._lock:
            try:
                while run.state not in TERMINAL_STATES:
                    ok = await self._handlers[run.state](run)
                    run.state = self._next_state(run, ok)
            finally:
                self._claimed_names.difference_update(run.claimed)

        if run.state is S.FAILED_TERMINAL:
            run.message = FAILURE_MESSAGES[run.reason]
            if run.artifact is not None:
                run.artifact.status = DeliveryStatus.FAILED
            logger.warning("Export failed (%s): %s", run.reason.value, ", ".join(map(str, run.attempts)))
        else:
            run.artifact.status = DeliveryStatus.DELIVERED
            logger.info("Export delivered: %s", run.message)

        return ExportReport(
            state=run.state,
            reason=run.reason,
            message=run.message,
            artifact=run.artifact,
            attempts=list(run.attempts),
        )

    def _next_state(self, run: ExportRun, ok: bool) -> ExportState:
        key = (run.state, ok)
        if run.file_path is None and key in NO_FILE_TRANSITIONS:
            next_state = NO_FILE_TRANSITIONS[key]
        else:
            next_state = TRANSITIONS[key]

        if next_state is S.FAILED_TERMINAL:
            run.reason = FAILURE_REASONS[run.state]
        logger.debug("Export %s -> %s", run.state.value, next_state.value)
        return next_state

    async def _attempt(
        self,
        run: ExportRun,
        strategy: str,
        action: Callable[[], Awaitable[Optional[str]]],
        failure_detail: Optional[str] = None,
    ) -> bool:
        """Run one strategy once and log its outcome. Capability failures never escape."""
        if run.attempted(strategy):
            raise RuntimeError(f"strategy {strategy!r} already attempted in this run")

        try:
            detail = await action()
        except _Declined as exc:
            detail = str(exc)
        except CapabilityUnavailable as exc:
            detail = failure_detail or "unavailable"
            logger.info("Export %s unavailable: %s", strategy, exc)
        except Exception as exc:
            detail = failure_detail or f"{type(exc).__name__}: {exc}"
            logger.info("Export %s raised %r", strategy, exc)
        else:
            run.attempts.append(AttemptEntry(strategy=strategy, outcome=AttemptOutcome.SUCCESS, detail=detail))
            logger.info("Export %s succeeded", strategy)
            return True

        run.attempts.append(AttemptEntry(strategy=strategy, outcome=AttemptOutcome.FAIL, detail=detail))
        logger.warning("Export %s failed: %s", strategy, detail)
        return False

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    async def _start(self, run: ExportRun) -> bool:
        return True

    async def _convert(self, run: ExportRun) -> bool:
        try:
            text = encode_csv(run.records)
        except EncodeEmptyError:
            return False
        run.artifact = self._new_artifact(text)
        return True

    async def _write_primary(self, run: ExportRun) -> bool:
        return await self._write(run, "write-primary", self.primary_dir, LocationKind.PERSISTENT_PATH)

    async def _write_fallback(self, run: ExportRun) -> bool:
        return await self._write(run, "write-fallback", self.fallback_dir, LocationKind.CACHE_PATH)

    async def _write(self, run: ExportRun, strategy: str, directory: str, kind: LocationKind) -> bool:
        async def action() -> str:
            name, path = await self._free_path(run, directory)
            await self.storage.write_text(path, run.artifact.content)
            info = await self.storage.info(path)
            if not info.exists or info.size == 0:
                raise _Declined("write-unverified")
            run.file_path = path
            run.artifact.name = name
            run.artifact.location = Location(kind=kind, value=path)
            return path

        return await self._attempt(run, strategy, action)

    async def _platform_branch(self, run: ExportRun) -> bool:
        return self.has_media_gallery

    async def _media_asset(self, run: ExportRun) -> bool:
        async def action() -> str:
            if not await self.gallery.request_permission():
                raise _Declined("media-denied")
            asset_id = await self.gallery.create_asset(run.file_path)
            album_id = await self.gallery.get_album(self.album_name)
            if album_id is None:
                await self.gallery.create_album(self.album_name, asset_id)
            else:
                await self.gallery.add_asset_to_album(asset_id, album_id)
            run.artifact.location = Location(kind=LocationKind.MEDIA_ASSET_ID, value=asset_id)
            return asset_id

        if not await self._attempt(run, "media-asset", action, failure_detail="asset-failed"):
            return False

        run.message = f"Saved {run.artifact.name} to album '{self.album_name}'."
        await self._offer_share(run)
        return True

    async def _offer_share(self, run: ExportRun) -> None:
        try:
            wanted = await self.prompt.offer_share(run.artifact)
        except Exception as exc:
            logger.warning("Share offer prompt failed: %r", exc)
            return
        if wanted:
            # outcome is logged only; the file is already saved
            await self._attempt(run, "share-saved", lambda: self._share_file(run))

    async def _share_direct(self, run: ExportRun) -> bool:
        async def action() -> None:
            if run.file_path is None:
                raise _Declined("no-file")
            await self._share_file(run)

        return await self._share_step(run, "share-direct", action)

    async def _share_fallback(self, run: ExportRun) -> bool:
        return await self._share_step(run, "share-fallback", lambda: self._share_file(run))

    async def _share_content(self, run: ExportRun) -> bool:
        async def action() -> None:
            if not await self.share_sheet.is_available():
                raise CapabilityUnavailable("share sheet unavailable")
            run.artifact.share_id = await self.share_sheet.share_text(run.artifact.content, self._title())
            run.artifact.location = Location()

        if not await self._attempt(run, "share-content", action):
            return False
        run.message = "Shared the CSV content as text."
        return True

    async def _share_step(self, run: ExportRun, strategy: str, action: Callable[[], Awaitable[None]]) -> bool:
        if not await self._attempt(run, strategy, action):
            return False
        run.message = f"Shared {run.artifact.name} via the share sheet."
        return True

    async def _share_file(self, run: ExportRun) -> None:
        if not await self.share_sheet.is_available():
            raise CapabilityUnavailable("share sheet unavailable")
        uri = Path(run.file_path).absolute().as_uri()
        run.artifact.share_id = await self.share_sheet.share_file(uri, CSV_MIME_TYPE, self._title())

    async def _prompt_user(self, run: ExportRun) -> bool:
        try:
            return bool(await self.prompt.choose_text_share("File sharing failed. Share the CSV as text instead?"))
        except Exception as exc:
            logger.warning("Recovery prompt failed, abandoning export: %r", exc)
            return False

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _free_path(self, run: ExportRun, directory: str) -> Tuple[str, str]:
        """
        Pick `<prefix>_<ms>.csv`, moving to the next millisecond while the name
        is claimed by a running export or the file already exists.

        A name is claimed before the existence check is awaited, so two runs
        started in the same millisecond never pick the same file.
        """
        stamp = int(self.clock() * 1000)
        while True:
            name = f"{self.prefix}_{stamp}{CSV_EXTENSION}"
            stamp += 1
            if name in self._claimed_names:
                continue
            self._claimed_names.add(name)
            run.claimed.append(name)
            path = str(Path(directory) / name)
            if not (await self.storage.info(path)).exists:
                return name, path

    def _new_artifact(self, text: str) -> ExportArtifact:
        return ExportArtifact(name=f"{self.prefix}{CSV_EXTENSION}", content=text)

    def _title(self) -> str:
        return f"Export {self.prefix} CSV"
