"""Upload session endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from permavault.core.session_manager import UploadSessionManager
from permavault.errors import CredentialIssuanceError, InvalidInput
from permavault.models.files import FileRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class StartUploadBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    files: list[FileRequest]


@router.get("/health")
def health() -> dict:
    """Liveness probe."""
    return {"ok": True}


@router.post("/upload/start")
def start_upload(body: StartUploadBody, request: Request) -> JSONResponse:
    """Plan an upload session: one presigned PUT per requested file."""
    manager: UploadSessionManager = request.app.state.session_manager
    if not body.files:
        return JSONResponse(
            status_code=400,
            content={"error": "no_files", "detail": "files must contain at least one entry"},
        )
    try:
        session = manager.start_session(body.session_id, body.files)
    except InvalidInput as exc:
        return JSONResponse(status_code=400, content={"error": "invalid_input", "detail": str(exc)})
    except CredentialIssuanceError as exc:
        return JSONResponse(
            status_code=502,
            content={"error": "presign_failed", "path": exc.relative_path, "detail": str(exc)},
        )
    return JSONResponse(session.model_dump(mode="json", by_alias=True))
