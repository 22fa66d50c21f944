from __future__ import annotations

import logging
from typing import Any, BinaryIO, Dict, Iterator, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from api.deps import get_file_service, get_principal
from api.schemas import FileDetails
from contracts.access_types import Denied, NotFound, Ok, Principal, Result, ValidationFailed
from engine.errors import ConcurrentModification, StorageInconsistency
from services.file_lifecycle import FileDownload, FileLifecycleService

log = logging.getLogger("filegate.files.api")

_CHUNK_SIZE = 64 * 1024

router = APIRouter(prefix="/API", tags=["files"])


def _unwrap(result: Result) -> Any:
    """Map a lifecycle result onto HTTP. Denial reasons are never returned."""
    if isinstance(result, Ok):
        return result.value
    if isinstance(result, Denied):
        raise HTTPException(status_code=401, detail="Not authorized")
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404, detail="Not found")
    if isinstance(result, ValidationFailed):
        raise HTTPException(status_code=400, detail={"errors": result.field_errors})
    raise HTTPException(status_code=500, detail="Unexpected result")


def _iter_chunks(stream: BinaryIO) -> Iterator[bytes]:
    try:
        while True:
            chunk = stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


@router.get("/File/{file_id}", response_model=FileDetails)
def get_file(
    file_id: str,
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> FileDetails:
    return _unwrap(service.get(principal, file_id))


@router.get("/File/{file_id}/Download")
def download_file(
    file_id: str,
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> StreamingResponse:
    download: FileDownload = _unwrap(service.download(principal, file_id))
    details = download.details
    name = details.filename or details.title
    return StreamingResponse(
        _iter_chunks(download.stream),
        media_type=details.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(name)}",
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/Document/{document_id}/Files", response_model=List[FileDetails])
def list_files(
    document_id: str,
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> List[FileDetails]:
    return _unwrap(service.list_files(principal, document_id))


@router.post("/Document/{document_id}/Files", response_model=FileDetails)
async def upload_file(
    document_id: str,
    request: Request,
    title: Optional[str] = Query(None),
    filename: Optional[str] = Query(None),
    source_url: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> FileDetails:
    content = await request.body()
    metadata: Dict[str, Any] = {
        "title": title,
        "filename": filename,
        "source_url": source_url,
        "mime_type": request.headers.get("content-type"),
    }
    result = await run_in_threadpool(
        service.create,
        principal,
        document_id,
        content,
        metadata,
    )
    return _unwrap(result)


@router.patch("/File/{file_id}", response_model=FileDetails)
def update_file(
    file_id: str,
    patch: Dict[str, Any] = Body(...),
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> FileDetails:
    try:
        result = service.update(principal, file_id, patch)
    except ConcurrentModification:
        raise HTTPException(status_code=409, detail="File was modified concurrently")
    return _unwrap(result)


@router.delete("/File/{file_id}")
def delete_file(
    file_id: str,
    principal: Principal = Depends(get_principal),
    service: FileLifecycleService = Depends(get_file_service),
) -> Dict[str, str]:
    try:
        result = service.delete(principal, file_id)
    except ConcurrentModification:
        raise HTTPException(status_code=409, detail="File was modified concurrently")
    except StorageInconsistency as exc:
        log.error("delete of file=%s left storage inconsistent code=%s", file_id, exc.code)
        raise HTTPException(
            status_code=500, detail="Storage inconsistency; file requires remediation"
        )
    _unwrap(result)
    return {"status": "deleted", "file_id": file_id}
