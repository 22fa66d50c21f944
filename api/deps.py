from __future__ import annotations

from fastapi import HTTPException, Request

from contracts.access_types import Principal
from services.file_lifecycle import FileLifecycleService


def get_principal(request: Request) -> Principal:
    """
    Resolved principal for the current request.

    Identity is established upstream (auth middleware or gateway) and left on
    ``request.state.principal``; this layer never looks it up itself.
    """
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        # Fail closed when no identity was attached.
        raise HTTPException(status_code=401, detail="Missing auth context")
    return principal


def get_file_service(request: Request) -> FileLifecycleService:
    service = getattr(request.app.state, "file_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="File service unavailable")
    return service
