"""
In-memory capability fakes shared by the orchestrator and pipeline tests.
"""
import pytest

from csvrelay.capabilities import MediaGallery, RecoveryPrompt, ShareSheet, StorageWriter
from csvrelay.errors import CapabilityError, CapabilityUnavailable
from csvrelay.models import FileInfo
from csvrelay.orchestrator import ExportOrchestrator

PRIMARY_DIR = "/data/documents"
FALLBACK_DIR = "/data/cache"
FIXED_NOW = 1700000000.0


class FakeStorage(StorageWriter):
    def __init__(self, fail_dirs=()):
        self.fail_dirs = tuple(fail_dirs)
        self.files = {}
        self.writes = []

    async def write_text(self, path, text):
        self.writes.append(path)
        if path.startswith(self.fail_dirs):
            raise CapabilityError("permission denied")
        self.files[path] = text

    async def info(self, path):
        if path not in self.files:
            return FileInfo(exists=False)
        return FileInfo(exists=True, size=len(self.files[path]))


class FakeShareSheet(ShareSheet):
    def __init__(self, available=True, file_failures=0, text_fails=False):
        self.available = available
        self.file_failures = file_failures
        self.text_fails = text_fails
        self.calls = []

    async def is_available(self):
        return self.available

    async def share_file(self, uri, mime_type, title):
        self.calls.append(("file", uri))
        if self.file_failures > 0:
            self.file_failures -= 1
            raise CapabilityError("share dismissed with error")
        return f"share-{len(self.calls)}"

    async def share_text(self, text, title):
        self.calls.append(("text", text))
        if self.text_fails:
            raise CapabilityError("text share failed")
        return f"share-{len(self.calls)}"


class FakeGallery(MediaGallery):
    def __init__(self, permission=True, create_fails=False, unsupported=False, existing_album=None):
        self.permission = permission
        self.create_fails = create_fails
        self.unsupported = unsupported
        self.albums = {existing_album: []} if existing_album else {}
        self.calls = []

    async def request_permission(self):
        self.calls.append("request_permission")
        if self.unsupported:
            raise CapabilityUnavailable("no media library")
        return self.permission

    async def create_asset(self, path):
        self.calls.append("create_asset")
        if self.create_fails:
            raise CapabilityError("asset creation failed")
        return "asset-1"

    async def get_album(self, name):
        self.calls.append("get_album")
        return name if name in self.albums else None

    async def create_album(self, name, asset_id):
        self.calls.append("create_album")
        self.albums[name] = [asset_id]
        return name

    async def add_asset_to_album(self, asset_id, album_id):
        self.calls.append("add_asset_to_album")
        self.albums[album_id].append(asset_id)


class FakePrompt(RecoveryPrompt):
    def __init__(self, accept_text=True, share_after_save=False):
        self.accept_text = accept_text
        self.share_after_save = share_after_save
        self.asked = []

    async def choose_text_share(self, reason):
        self.asked.append("choose_text_share")
        return self.accept_text

    async def offer_share(self, artifact):
        self.asked.append("offer_share")
        return self.share_after_save


@pytest.fixture
def make_orchestrator():
    """Factory building an orchestrator over the given fakes."""

    def _make(storage=None, share_sheet=None, prompt=None, gallery=None):
        return ExportOrchestrator(
            storage or FakeStorage(),
            share_sheet or FakeShareSheet(),
            prompt or FakePrompt(),
            primary_dir=PRIMARY_DIR,
            fallback_dir=FALLBACK_DIR,
            gallery=gallery,
            has_media_gallery=gallery is not None,
            prefix="results",
            album_name="Exports",
            clock=lambda: FIXED_NOW,
        )

    return _make
