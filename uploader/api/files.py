"""File upload endpoints."""

from uploader.core.handler import UploadHandler
from uploader.core.router import Router
from uploader.core.settings import settings as st
from uploader.core.uploaded_file import UploadedFile
from uploader.models.core import UploadedFiles

uploads = UploadHandler().upload_options(
    default_upload_dir=lambda: str(st.UPLOAD_DIR),
    allow_overwrite=st.UPLOAD_ALLOW_OVERWRITE,
    unlink_tempfile=st.UPLOAD_UNLINK_TEMPFILE,
    autosave=True,
)
uploads.handle_uploads_for("upload")

router = Router(__file__, prefix="/files", uploads=uploads)


def describe(field: str, upload: UploadedFile) -> dict:
    return {
        "field": field,
        "filename": upload.filename,
        "mime_type": upload.mime_type,
        "saved": upload.saved,
        "path": str(upload.path) if upload.path else None,
    }


@router.post("/upload")
async def upload(files: UploadedFiles) -> dict:
    """Save every uploaded file into the upload directory."""
    return {"files": [describe(field, upload) for field, upload in files.flatten()]}
