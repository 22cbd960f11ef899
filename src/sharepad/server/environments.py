"""Per-environment endpoints: shared text, files, versions and live events."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import FileResponse, PlainTextResponse

from sharepad.server.deps import get_hub, get_service
from sharepad.server.schemas import (
    FileEntry,
    UploadedFile,
    UploadResponse,
    VersionDeleteResponse,
    VersionList,
)
from sharepad.service import Sharepad
from sharepad.storage.sanitize import sanitize_name

log = structlog.get_logger()
router = APIRouter(prefix="/environments/{environment}", tags=["environments"])

# Type alias for dependency injection
ServiceDep = Annotated[Sharepad, Depends(get_service)]


# =============================================================================
# Shared Text
# =============================================================================


@router.get("/text", response_class=PlainTextResponse)
async def get_text(environment: str, service: ServiceDep) -> str:
    """Get the shared text (newline-terminated for terminal clients)."""
    return service.get_text(environment) + "\n"


@router.put("/text", response_class=PlainTextResponse)
async def put_text(environment: str, request: Request, service: ServiceDep) -> str:
    """Replace the shared text with the raw request body."""
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Text must be UTF-8") from None
    service.set_text(environment, text)
    return "Text updated successfully\n"


# =============================================================================
# Files
# =============================================================================


@router.get("/files", response_model=list[FileEntry])
async def list_files(environment: str, service: ServiceDep) -> list[FileEntry]:
    """List live files with their current version."""
    return [FileEntry.from_summary(s) for s in service.list_files(environment)]


@router.post("/files", response_model=UploadResponse)
async def upload_files(
    environment: str,
    files: list[UploadFile],
    service: ServiceDep,
) -> UploadResponse:
    """Upload one or more files in a single request; each becomes a new version."""
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    uploaded = []
    for upload in files:
        version, metadata = service.store_upload(environment, upload.filename, upload.file)
        uploaded.append(
            UploadedFile(
                file_name=metadata.original_file_name,
                version_id=version.version_id,
                file_size=version.file_size,
                version_count=len(metadata.versions),
            )
        )
    log.info("files_uploaded", environment=environment, count=len(uploaded))
    return UploadResponse(uploaded=uploaded)


@router.get("/files/{file_name}")
async def download_file(
    environment: str,
    file_name: str,
    service: ServiceDep,
    version: str | None = None,
) -> FileResponse:
    """Download the current version of a file, or a specific version."""
    path = service.resolve_download(environment, file_name, version)
    return FileResponse(path, filename=sanitize_name(file_name))


@router.delete("/files/{file_name}", response_class=PlainTextResponse)
async def delete_file(environment: str, file_name: str, service: ServiceDep) -> str:
    """Delete a file and its whole version history."""
    service.delete_file(environment, file_name)
    return "File deleted successfully\n"


# =============================================================================
# Versions
# =============================================================================


@router.get("/files/{file_name}/versions", response_model=VersionList)
async def list_versions(environment: str, file_name: str, service: ServiceDep) -> VersionList:
    """Get the version history of a file, newest first."""
    return VersionList.from_metadata(service.list_versions(environment, file_name))


@router.delete("/files/{file_name}/versions/{version_id}", response_model=VersionDeleteResponse)
async def delete_version(
    environment: str,
    file_name: str,
    version_id: str,
    service: ServiceDep,
) -> VersionDeleteResponse:
    """Delete one version; deleting the current one promotes the next newest."""
    metadata = service.delete_version(environment, file_name, version_id)
    current = metadata.current_version
    return VersionDeleteResponse(
        file_name=metadata.original_file_name,
        deleted_version_id=version_id,
        remaining_versions=len(metadata.versions),
        current_version_id=current.version_id if current else None,
    )


@router.post("/files/{file_name}/versions/{version_id}/promote", response_model=VersionList)
async def promote_version(
    environment: str,
    file_name: str,
    version_id: str,
    service: ServiceDep,
) -> VersionList:
    """Make an archived version the current one."""
    return VersionList.from_metadata(service.promote_version(environment, file_name, version_id))


# =============================================================================
# Live Events
# =============================================================================


@router.websocket("/events")
async def events(websocket: WebSocket, environment: str) -> None:
    """
    Stream change events for an environment.

    The current text is pushed on connect. Clients send
    `{"type": "textChange", "text": ...}` to edit the shared text; the
    change is broadcast to every other client of the environment.
    """
    service = get_service()
    hub = get_hub()
    env = service.environment(environment)

    await hub.connect(env, websocket)
    try:
        await websocket.send_json({"type": "textUpdate", "text": service.get_text(env)})
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "textChange":
                service.set_text(env, str(message.get("text", "")), exclude=websocket)
            elif kind == "fileList":
                files = [s.name for s in service.list_files(env)]
                await websocket.send_json({"type": "fileList", "files": files})
            else:
                log.debug("websocket_message_ignored", environment=env, type=kind)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(env, websocket)
