"""Upload error taxonomy."""

from robyn import status_codes


class UploadError(Exception):
    """Base class for every upload extraction or persistence failure."""

    status_code: int = status_codes.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "upload_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": str(self)}


class MissingConfigError(UploadError):
    """No explicit path was given and no default upload directory is configured."""

    code = "missing_config"

    def __init__(self) -> None:
        super().__init__("Unable to save file, no dirname given")


class MissingFilenameError(UploadError):
    """No filename is available to compose an implicit destination path."""

    status_code = status_codes.HTTP_400_BAD_REQUEST
    code = "missing_filename"

    def __init__(self) -> None:
        super().__init__("Unable to save file, no filename given")


class OverwriteDeniedError(UploadError):
    status_code = status_codes.HTTP_409_CONFLICT
    code = "overwrite_denied"

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"Unable to overwrite existing file {path}")


class SourceUnreadableError(UploadError):
    code = "source_unreadable"

    def __init__(self, source=None) -> None:
        self.source = source
        super().__init__("Unable to read temporary file")


class DestinationUnwritableError(UploadError):
    code = "destination_unwritable"

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"Unable to save file to {path}. Path is not writable")


class UploadScopeError(UploadError):
    """Uploads were requested outside of an active call scope."""

    code = "no_call_scope"


class AutosaveError(UploadError):
    """One or more uploads failed to save automatically after classification."""

    code = "autosave_failed"

    def __init__(self, errors: dict[str, UploadError | OSError]) -> None:
        self.errors = errors
        self.status_code = max(
            (getattr(err, "status_code", UploadError.status_code) for err in errors.values()),
            default=UploadError.status_code,
        )
        super().__init__(f"Failed to save {len(errors)} uploaded file(s): {', '.join(errors)}")

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "detail": str(self),
            "fields": {field: str(err) for field, err in self.errors.items()},
        }
