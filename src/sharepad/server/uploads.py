"""Chunked upload endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Form, UploadFile

from sharepad.config.settings import Settings, get_settings
from sharepad.server.deps import get_service
from sharepad.server.schemas import (
    ChunkResponse,
    CleanupResponse,
    CompleteUploadRequest,
    InitiateUploadRequest,
    InitiateUploadResponse,
    UploadConfigResponse,
    UploadedFile,
    UploadStatusResponse,
)
from sharepad.service import Sharepad
from sharepad.storage.errors import InvalidArgumentError

log = structlog.get_logger()
router = APIRouter(prefix="/uploads", tags=["uploads"])

ServiceDep = Annotated[Sharepad, Depends(get_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


@router.get("/config", response_model=UploadConfigResponse)
async def upload_config(settings: SettingsDep) -> UploadConfigResponse:
    """Chunk size clients should split large files into."""
    return UploadConfigResponse(chunk_size_bytes=settings.chunk_size_bytes)


@router.post("/initiate", response_model=InitiateUploadResponse)
async def initiate_upload(
    request: InitiateUploadRequest,
    service: ServiceDep,
) -> InitiateUploadResponse:
    """Open a chunked upload session."""
    session = service.initiate_upload(
        request.file_name,
        request.file_size,
        request.total_chunks,
        environment=request.environment,
    )
    return InitiateUploadResponse(
        upload_id=session.upload_id,
        file_name=session.file_name,
        environment=session.environment,
    )


@router.post("/chunk", response_model=ChunkResponse)
async def upload_chunk(
    service: ServiceDep,
    upload_id: Annotated[str | None, Form(alias="uploadId")] = None,
    chunk_index: Annotated[int | None, Form(alias="chunkIndex")] = None,
    chunk: UploadFile | None = None,
) -> ChunkResponse:
    """Receive one chunk as multipart form data (uploadId, chunkIndex, chunk)."""
    if not upload_id or chunk_index is None or chunk is None:
        raise InvalidArgumentError("Missing chunk data")

    session = service.receive_chunk(upload_id, chunk_index, chunk.file)
    return ChunkResponse(
        uploaded_chunks=session.uploaded_chunks,
        total_chunks=session.total_chunks,
    )


@router.post("/complete", response_model=UploadedFile)
async def complete_upload(
    request: CompleteUploadRequest,
    service: ServiceDep,
) -> UploadedFile:
    """Reassemble a session's chunks into a new file version."""
    if not request.upload_id:
        raise InvalidArgumentError("Missing uploadId")

    version, metadata = service.complete_upload(request.upload_id)
    return UploadedFile(
        file_name=metadata.original_file_name,
        version_id=version.version_id,
        file_size=version.file_size,
        version_count=len(metadata.versions),
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_uploads(service: ServiceDep) -> CleanupResponse:
    """Reap expired, stale and canceled sessions immediately."""
    report = service.run_cleanup()
    return CleanupResponse(**asdict(report))


@router.get("/{upload_id}", response_model=UploadStatusResponse)
async def upload_status(upload_id: str, service: ServiceDep) -> UploadStatusResponse:
    """Report the progress of a session."""
    return UploadStatusResponse(**service.upload_status(upload_id))


@router.delete("/{upload_id}")
async def cancel_upload(upload_id: str, service: ServiceDep) -> dict[str, object]:
    """Mark a session as canceled; the reaper removes it."""
    service.cancel_upload(upload_id)
    return {"success": True, "message": "Upload session marked for cancellation"}
