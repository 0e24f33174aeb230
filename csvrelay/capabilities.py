"""
Capability interfaces.

Ports for the platform collaborators the pipeline talks to. Every method is
awaited; implementations signal failure by raising CapabilityError (or
CapabilityUnavailable when the platform simply lacks the feature).

Server-side implementations live in csvrelay.adapters; tests use in-memory
fakes.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .models import ExportArtifact, FileHandle, FileInfo


class FilePicker(ABC):
    """Lets the user choose an input file."""

    @abstractmethod
    async def pick(self) -> Optional[FileHandle]:
        """
        Ask the user for a file.

        Returns:
            Handle to the chosen file, or None if the user cancelled.
        """
        pass


class TextReader(ABC):
    @abstractmethod
    async def read(self, handle: FileHandle) -> str:
        """Return the full text content of a picked file."""
        pass


class StorageWriter(ABC):
    """Writes export files to device storage."""

    @abstractmethod
    async def write_text(self, path: str, text: str) -> None:
        pass

    @abstractmethod
    async def info(self, path: str) -> FileInfo:
        pass


class MediaGallery(ABC):
    """
    Device media library.

    Any call may raise CapabilityUnavailable on platforms that lack the API.
    """

    @abstractmethod
    async def request_permission(self) -> bool:
        """Returns True if the user granted library access."""
        pass

    @abstractmethod
    async def create_asset(self, path: str) -> str:
        """Register a file as a library asset and return its id."""
        pass

    @abstractmethod
    async def get_album(self, name: str) -> Optional[str]:
        pass

    @abstractmethod
    async def create_album(self, name: str, asset_id: str) -> str:
        """Create an album seeded with one asset and return the album id."""
        pass

    @abstractmethod
    async def add_asset_to_album(self, asset_id: str, album_id: str) -> None:
        pass


class ShareSheet(ABC):
    """
    OS share sheet.

    Share calls may return a reference to what was shared (a download id, a
    share-sheet session id); platforms without one return None.
    """

    @abstractmethod
    async def is_available(self) -> bool:
        pass

    @abstractmethod
    async def share_file(self, uri: str, mime_type: str, title: str) -> Optional[str]:
        pass

    @abstractmethod
    async def share_text(self, text: str, title: str) -> Optional[str]:
        pass


class RecoveryPrompt(ABC):
    """Questions put to the user while an export is recovering."""

    @abstractmethod
    async def choose_text_share(self, reason: str) -> bool:
        """
        Offer to share the CSV as plain text after file sharing failed.

        Returns:
            True to share as text, False to abandon the export.
        """
        pass

    @abstractmethod
    async def offer_share(self, artifact: ExportArtifact) -> bool:
        """Ask whether to also share a file that was saved to the gallery."""
        pass
