"""Artwork upload endpoints."""

import asyncio
import functools
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    Response,
    UploadFile,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...core.duplicate_guard import DuplicateGuard
from ...core.staging import StagingArea
from ...core.types import Submission, Verdict, VerdictKind
from ...db import CatalogDB, get_db
from ...db.schemas import CatalogEntryResponse, DuplicateResponse
from ...shared import is_image_content_type

logger = logging.getLogger(__name__)

router = APIRouter()

# How often a running check looks for a client disconnect (seconds)
DISCONNECT_POLL_INTERVAL = 0.25

MESSAGES = {
    (VerdictKind.EXACT_DUPLICATE, True): "You have already uploaded this artwork.",
    (VerdictKind.EXACT_DUPLICATE, False): (
        "This artwork already exists in the catalog under another artist."
    ),
    (VerdictKind.NEAR_DUPLICATE, True): (
        "This image is very similar to one of your existing artworks."
    ),
    (VerdictKind.NEAR_DUPLICATE, False): (
        "This image is very similar to an existing artwork by another artist."
    ),
}


def duplicate_message(verdict: Verdict) -> str:
    """User-facing message for a duplicate verdict."""
    return MESSAGES[(verdict.kind, verdict.same_owner)]


def get_catalog(db: Session = Depends(get_db)) -> CatalogDB:
    return CatalogDB(db)


def get_guard(catalog: CatalogDB = Depends(get_catalog)) -> DuplicateGuard:
    return DuplicateGuard(catalog)


def get_staging() -> StagingArea:
    return StagingArea()


async def _build_submission(
    owner_id: str,
    file: Optional[UploadFile],
    image_url: Optional[str],
    title: Optional[str],
    staging: StagingArea,
) -> Submission:
    if not owner_id.strip():
        raise HTTPException(status_code=400, detail="X-Owner-Id header must not be empty")

    if (file is None) == (not image_url):
        raise HTTPException(
            status_code=400, detail="Provide exactly one of 'file' or 'image_url'"
        )

    if file is None:
        return Submission(owner_id=owner_id, url=image_url, title=title)

    if not is_image_content_type(file.content_type):
        raise HTTPException(
            status_code=400,
            detail="Only image files are allowed (jpg, jpeg, png, webp, gif).",
        )

    staged = await run_in_threadpool(staging.stage_stream, file.file, file.filename or "")
    try:
        return Submission(owner_id=owner_id, staged_path=staged, title=title)
    except BaseException:
        StagingArea.discard(staged)
        raise


def _discard_when_done(task: "asyncio.Future[Verdict]", path: Optional[Path]) -> None:
    # Marks an abandoned worker's error as retrieved
    if not task.cancelled():
        task.exception()
    StagingArea.discard(path)


async def _run_guarded(
    request: Request, run: Callable[[Submission], Verdict], submission: Submission
) -> Verdict:
    """Run the guard in a worker thread, cancelling it if the client goes away."""
    cancel_event = threading.Event()
    submission.cancel_event = cancel_event

    task = asyncio.ensure_future(run_in_threadpool(run, submission))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if not cancel_event.is_set() and await request.is_disconnected():
                logger.info(f"Client disconnected; cancelling upload from {submission.owner_id}")
                cancel_event.set()
    finally:
        if task.done():
            StagingArea.discard(submission.staged_path)
        else:
            # Request task cancelled (server shutdown, timeout): stop the worker
            # and drop the staged file once it has finished or never started
            cancel_event.set()
            task.add_done_callback(
                functools.partial(_discard_when_done, path=submission.staged_path)
            )


def _duplicate_response(verdict: Verdict) -> JSONResponse:
    body = DuplicateResponse(
        verdict=verdict.kind.value,
        message=duplicate_message(verdict),
        same_owner=verdict.same_owner,
        matched_entry_id=verdict.matched_entry_id,
        distance=verdict.distance,
    )
    return JSONResponse(status_code=409, content=body.model_dump())


@router.post("/check", response_model=Verdict)
async def check_artwork(
    request: Request,
    owner_id: str = Header(..., alias="X-Owner-Id"),
    file: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    guard: DuplicateGuard = Depends(get_guard),
    staging: StagingArea = Depends(get_staging),
) -> Verdict:
    """Classify an image without publishing it."""
    submission = await _build_submission(owner_id, file, image_url, title, staging)
    return await _run_guarded(request, guard.check, submission)


@router.post(
    "",
    status_code=201,
    response_model=CatalogEntryResponse,
    responses={409: {"model": DuplicateResponse}},
)
async def upload_artwork(
    request: Request,
    owner_id: str = Header(..., alias="X-Owner-Id"),
    file: Optional[UploadFile] = File(None),
    image_url: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    guard: DuplicateGuard = Depends(get_guard),
    staging: StagingArea = Depends(get_staging),
):
    """Publish an image unless it duplicates an existing artwork."""
    submission = await _build_submission(owner_id, file, image_url, title, staging)
    verdict = await _run_guarded(request, guard.submit, submission)

    if verdict.is_duplicate:
        return _duplicate_response(verdict)

    entry = guard.catalog.get_entry(verdict.entry_id)
    return CatalogEntryResponse.model_validate(entry)


@router.delete("/{entry_id}", status_code=204)
def delete_artwork(
    entry_id: str,
    owner_id: str = Header(..., alias="X-Owner-Id"),
    catalog: CatalogDB = Depends(get_catalog),
) -> Response:
    """Remove an artwork from the catalog."""
    entry = catalog.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Artwork not found")
    if entry.owner_id != owner_id:
        raise HTTPException(status_code=403, detail="Not the owner of this artwork")

    catalog.delete_entry(entry_id)
    return Response(status_code=204)
