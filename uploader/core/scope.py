"""Call-scoped upload state.

Each inbound request runs inside its own :func:`call_scope`, holding the
request's parameter bag and the uploads extracted from it. The state lives in a
context variable, so concurrent requests never see each other's uploads.
"""

from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from pathlib import Path

from uploader.core.logger import LogIcon, logger
from uploader.models.core import EMPTY_UPLOADS, ParamBag, UploadedFiles


@dataclass
class CallScope:
    """Parameters and extraction result for a single call."""

    params: ParamBag
    uploads: UploadedFiles = field(default_factory=UploadedFiles)
    tempfiles: list[Path] = field(default_factory=list)

    def record(self, extracted: Mapping) -> None:
        """Keep ``extracted`` as the call's uploads; an empty result never replaces an earlier one."""
        if extracted:
            self.uploads = UploadedFiles(extracted)

    def cleanup(self) -> None:
        """Remove temp files created for this call that nobody saved or unlinked."""
        for tempfile in self.tempfiles:
            if tempfile.exists():
                tempfile.unlink(missing_ok=True)
                logger.debug("Removed leftover temporary file", icon=LogIcon.CLEANUP, tempfile=str(tempfile))
        self.tempfiles.clear()


_current_scope: ContextVar[CallScope | None] = ContextVar("upload_call_scope", default=None)


@contextmanager
def call_scope(params: ParamBag, tempfiles: list[Path] | None = None) -> Generator[CallScope, None, None]:
    """Open a call scope over ``params`` for the duration of the block."""
    scope = CallScope(params=params, tempfiles=list(tempfiles or []))
    token = _current_scope.set(scope)
    try:
        yield scope
    finally:
        _current_scope.reset(token)
        scope.cleanup()


def current_scope() -> CallScope | None:
    return _current_scope.get()


def uploaded_files() -> UploadedFiles:
    """Uploads extracted during the current call, empty when nothing was extracted."""
    scope = _current_scope.get()
    return scope.uploads if scope else EMPTY_UPLOADS
