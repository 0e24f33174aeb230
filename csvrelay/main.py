import logging

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response

from .adapters import FolderMediaGallery, LocalStorageWriter, OutboxShareSheet, StaticRecoveryPrompt, UploadedFile
from .compute import ComputeClient
from .config import settings
from .errors import ComputeError, InputError
from .models import ComputeResponse, DecodeResponse, HealthResponse
from .orchestrator import ExportOrchestrator
from .pipeline import CsvSession
from .rules import CSV_EXTENSION, PREVIEW_ROWS

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Compute results for an uploaded CSV and deliver them back as CSV",
    version=settings.VERSION,
)

outbox = OutboxShareSheet()


def get_compute_client() -> ComputeClient:
    return ComputeClient(
        settings.COMPUTE_URL,
        timeout=settings.COMPUTE_TIMEOUT,
        max_rows=settings.COMPUTE_MAX_ROWS,
    )


def get_orchestrator() -> ExportOrchestrator:
    return ExportOrchestrator(
        LocalStorageWriter(),
        outbox,
        StaticRecoveryPrompt(settings.SHARE_TEXT_ON_EXHAUSTION, settings.SHARE_AFTER_SAVE),
        primary_dir=settings.PRIMARY_DIR,
        fallback_dir=settings.FALLBACK_DIR,
        gallery=FolderMediaGallery(settings.MEDIA_DIR),
        has_media_gallery=settings.has_media_gallery,
        prefix=settings.EXPORT_PREFIX,
        album_name=settings.ALBUM_NAME,
    )


async def _load(session: CsvSession, file: UploadFile) -> UploadedFile:
    if not file.filename or not file.filename.lower().endswith(CSV_EXTENSION):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")

    upload = UploadedFile(file.filename, await file.read())
    try:
        await session.pick_file(upload, upload)
    except InputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return upload


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


@app.post("/decode", response_model=DecodeResponse)
async def decode(
    file: UploadFile = File(...),
    compute: ComputeClient = Depends(get_compute_client),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
):
    session = CsvSession(compute, orchestrator)
    await _load(session, file)
    state = session.state
    return DecodeResponse(
        file_name=state.file_name,
        headers=list(state.headers),
        rows=len(state.rows),
        preview=state.rows[:PREVIEW_ROWS],
    )


@app.post("/compute", response_model=ComputeResponse)
async def compute_and_export(
    file: UploadFile = File(...),
    compute: ComputeClient = Depends(get_compute_client),
    orchestrator: ExportOrchestrator = Depends(get_orchestrator),
):
    session = CsvSession(compute, orchestrator)
    await _load(session, file)

    try:
        report = await session.compute_and_export()
    except ComputeError as e:
        raise HTTPException(status_code=502, detail=e.reason)

    return ComputeResponse(
        file_name=session.state.file_name,
        rows_sent=len(compute.points(session.state.rows)),
        results=len(session.state.last_results or []),
        share_id=report.artifact.share_id if report.artifact else None,
        export=report,
    )


@app.get("/shares/{share_id}")
def download_share(share_id: str):
    item = outbox.pop(share_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Share not found")
    return Response(
        content=item.content,
        media_type=item.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{item.filename}"'},
    )
