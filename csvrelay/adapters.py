"""
Server-side capability implementations.

When the pipeline runs behind the HTTP API there is no device: the upload is
the picked file, storage is the local filesystem, the "gallery" is a folder
of albums, and the share sheet is an outbox the client downloads from.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse

from .capabilities import FilePicker, MediaGallery, RecoveryPrompt, ShareSheet, StorageWriter, TextReader
from .codec import decode_bytes
from .errors import CapabilityError, CapabilityUnavailable, InputError
from .models import ExportArtifact, FileHandle, FileInfo
from .rules import CSV_EXTENSION, CSV_MIME_TYPE, OUTPUT_ENCODING

logger = logging.getLogger(__name__)


def _path_from_uri(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


class UploadedFile(FilePicker, TextReader):
    """An uploaded file acting as both the pick result and its reader."""

    def __init__(self, filename: Optional[str], data: bytes):
        self.filename = filename
        self.data = data

    async def pick(self) -> Optional[FileHandle]:
        if not self.filename:
            return None
        return FileHandle(uri=f"upload:{self.filename}", name=self.filename)

    async def read(self, handle: FileHandle) -> str:
        if handle.name != self.filename:
            raise InputError(f"Unknown file: {handle.name}")
        return decode_bytes(self.data)


class LocalStorageWriter(StorageWriter):
    async def write_text(self, path: str, text: str) -> None:
        def _write() -> None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding=OUTPUT_ENCODING)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise CapabilityError(f"Failed to write {path}: {e}") from e

    async def info(self, path: str) -> FileInfo:
        def _stat() -> FileInfo:
            target = Path(path)
            if not target.is_file():
                return FileInfo(exists=False)
            return FileInfo(exists=True, size=target.stat().st_size)

        try:
            return await asyncio.to_thread(_stat)
        except OSError as e:
            raise CapabilityError(f"Failed to stat {path}: {e}") from e


class FolderMediaGallery(MediaGallery):
    """
    Gallery backed by a directory.

    Layout:
        <root>/assets/<asset_id>.csv
        <root>/albums/<album name>/<asset_id>.csv
    """

    def __init__(self, root: str, permission_granted: bool = True):
        self.root = Path(root)
        self.permission_granted = permission_granted

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def create_asset(self, path: str) -> str:
        asset_id = uuid.uuid4().hex
        target = self.root / "assets" / f"{asset_id}{CSV_EXTENSION}"
        await self._copy(Path(path), target)
        return asset_id

    async def get_album(self, name: str) -> Optional[str]:
        album = self.root / "albums" / name
        exists = await asyncio.to_thread(album.is_dir)
        return name if exists else None

    async def create_album(self, name: str, asset_id: str) -> str:
        await self.add_asset_to_album(asset_id, name)
        return name

    async def add_asset_to_album(self, asset_id: str, album_id: str) -> None:
        source = self.root / "assets" / f"{asset_id}{CSV_EXTENSION}"
        await self._copy(source, self.root / "albums" / album_id / source.name)

    async def _copy(self, source: Path, target: Path) -> None:
        def _do() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)

        try:
            await asyncio.to_thread(_do)
        except OSError as e:
            raise CapabilityError(f"Gallery copy failed: {e}") from e


@dataclass
class SharedItem:
    title: str
    mime_type: str
    filename: str
    content: bytes


class OutboxShareSheet(ShareSheet):
    """
    Keeps shared payloads in memory until the client downloads them.

    Each payload is handed out once: downloading it removes it. At most
    max_items payloads are held; the oldest is dropped to make room.
    """

    def __init__(self, available: bool = True, max_items: int = 100):
        self.available = available
        self.max_items = max_items
        self.items: Dict[str, SharedItem] = {}

    async def is_available(self) -> bool:
        return self.available

    async def share_file(self, uri: str, mime_type: str, title: str) -> str:
        path = _path_from_uri(uri)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise CapabilityError(f"Cannot share {uri}: {e}") from e
        return self._put(SharedItem(title=title, mime_type=mime_type, filename=path.name, content=content))

    async def share_text(self, text: str, title: str) -> str:
        content = text.encode(OUTPUT_ENCODING)
        return self._put(
            SharedItem(title=title, mime_type=CSV_MIME_TYPE, filename=f"shared{CSV_EXTENSION}", content=content)
        )

    def pop(self, share_id: str) -> Optional[SharedItem]:
        return self.items.pop(share_id, None)

    def _put(self, item: SharedItem) -> str:
        if not self.available:
            raise CapabilityUnavailable("share outbox disabled")
        while len(self.items) >= self.max_items:
            # dicts keep insertion order, so the first key is the oldest share
            dropped = next(iter(self.items))
            del self.items[dropped]
            logger.warning("Share outbox full, dropped %s", dropped)
        share_id = uuid.uuid4().hex
        self.items[share_id] = item
        logger.info("Queued share %s (%s, %d bytes)", share_id, item.filename, len(item.content))
        return share_id


class StaticRecoveryPrompt(RecoveryPrompt):
    """Answers recovery questions from configuration."""

    def __init__(self, share_text_on_exhaustion: bool = True, share_after_save: bool = False):
        self.share_text_on_exhaustion = share_text_on_exhaustion
        self.share_after_save = share_after_save

    async def choose_text_share(self, reason: str) -> bool:
        logger.info("Recovery prompt: %s -> %s", reason, self.share_text_on_exhaustion)
        return self.share_text_on_exhaustion

    async def offer_share(self, artifact: ExportArtifact) -> bool:
        return self.share_after_save
