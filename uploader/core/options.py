"""Three-tier save options: global defaults, owner overrides, per-call overrides."""

import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from beartype import beartype
from pydantic import BaseModel, ConfigDict

UploadDir = str | Path | Callable[[], str]


class UploadOptions(BaseModel):
    """Immutable set of options controlling how an uploaded file is saved.

    ``default_upload_dir`` may be a literal directory or a zero-argument callable.
    A callable is only invoked when a file is saved without an explicit path, so
    the directory can depend on state that is known at save time (the current
    user, a session key, ...).
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    allow_overwrite: bool = False
    autosave: bool = False
    default_upload_dir: UploadDir | None = None
    unlink_tempfile: bool = False

    def merge(self, overrides: Mapping[str, Any] | None = None) -> "UploadOptions":
        """Return new options with ``overrides`` replacing matching keys."""
        if not overrides:
            return self
        return UploadOptions(**{**dict(self), **overrides})

    @beartype
    def resolve_upload_dir(self) -> str | None:
        """Resolve ``default_upload_dir`` to a directory string, calling it if deferred."""
        upload_dir = self.default_upload_dir
        if upload_dir is None:
            return None
        if callable(upload_dir):
            return upload_dir()
        return os.fspath(upload_dir)


DEFAULT_UPLOAD_OPTIONS = UploadOptions()
