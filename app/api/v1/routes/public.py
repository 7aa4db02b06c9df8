import os

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from jose import JWTError

from app.api.deps import storage_dep
from app.core.errors import DocumentNotFound
from app.core.security import decode_token
from app.services.storage_service import DocumentStorage, LocalDocumentStorage

router = APIRouter(tags=["public"])


@router.get("/files/{token}")
def download_document(token: str, storage: DocumentStorage = Depends(storage_dep)):
    """Serve a locally stored document behind a signed, expiring link."""
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=403, detail="Link expired or invalid")
    if payload.get("type") != "file" or not isinstance(storage, LocalDocumentStorage):
        raise HTTPException(status_code=403, detail="Link expired or invalid")
    full = storage.full_path(payload.get("sub") or "")
    if not os.path.isfile(full):
        raise DocumentNotFound("Stored file not found")
    return FileResponse(full, filename=os.path.basename(full))
