"""
Files API

Uploads go to the local upload directory under a unique safe name and are
served back from /api/v1/files/<path>.
"""
import mimetypes
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from app.core.config import settings
from app.core.exceptions import ForbiddenError
from app.core.logging_config import logger
from app.models.user import User
from app.modules.auth.dependencies import get_current_user
from app.services.storage_service import storage_service
from app.utils.responses import envelope

router = APIRouter()


def _validate_upload(filename: str, size: int) -> str:
    """Returns an error message, or an empty string when the file is acceptable"""
    ext = Path(filename or "").suffix.lower()
    if ext not in settings.ALLOWED_EXTENSIONS:
        return f"File type {ext or '(none)'} is not allowed"
    if size > settings.MAX_UPLOAD_SIZE:
        return f"File exceeds the {settings.MAX_UPLOAD_SIZE // 1024 // 1024}MB limit"
    if size == 0:
        return "File is empty"
    return ""


@router.post("/upload")
async def upload_files(
    files: List[UploadFile] = File(...),
    current_user: User = Depends(get_current_user)
):
    """
    Upload one or more files.

    Returns 200 when every file is stored, 207 on partial success and 400 when
    none could be stored.
    """
    results = []
    errors = []

    for upload in files:
        content = await upload.read()
        error = _validate_upload(upload.filename, len(content))
        if error:
            errors.append({"filename": upload.filename, "error": error})
            continue

        stored = await storage_service.save(content, upload.filename)
        results.append({
            "filename": upload.filename,
            "stored_name": Path(stored.relative_path).name,
            "url": stored.url,
            "size": stored.size,
            "content_type": upload.content_type,
        })

    logger.info(f"[Files] User {current_user.id} uploaded {len(results)} file(s), {len(errors)} rejected")

    body = {
        "uploaded": len(results),
        "failed": len(errors),
        "results": results,
        "errors": errors,
    }
    if not results:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "No files were uploaded", "code": "UPLOAD_FAILED", "details": body},
        )
    if errors:
        return envelope(body, message="Some files failed to upload", status_code=207)
    return envelope(body, message="Files uploaded successfully")


@router.get("/{file_path:path}")
async def serve_file(file_path: str):
    """Serve a stored file; paths outside the upload root or inside ebooks/ give 403"""
    if storage_service.is_protected(file_path):
        logger.warning(f"[Files] Refused direct access to protected file {file_path}")
        raise ForbiddenError("This file is only available through the ebook reader")
    path = storage_service.open_path(file_path)
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(
        path=str(path),
        media_type=media_type,
        headers={"Cache-Control": settings.FILE_CACHE_CONTROL},
    )
