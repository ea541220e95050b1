"""Handle for a single uploaded file and the logic that persists it to disk."""

import os
import shutil
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any

from uploader.core.exceptions import (
    DestinationUnwritableError,
    MissingConfigError,
    MissingFilenameError,
    OverwriteDeniedError,
    SourceUnreadableError,
)
from uploader.core.logger import LogIcon, logger
from uploader.core.options import DEFAULT_UPLOAD_OPTIONS, UploadOptions
from uploader.core.settings import settings as st
from uploader.models.core import TempSource


def sanitize_filename(name: str | None) -> str | None:
    """Keep only the final path segment of ``name``, for either separator style."""
    if name is None:
        return None
    return os.path.basename(str(name).replace("\\", "/"))


def normalize_path(path: str | os.PathLike[str]) -> Path:
    return Path(os.path.abspath(os.path.expanduser(path)))


class UploadedFile:
    """An uploaded file extracted from request parameters.

    The file lives in its temporary location until :meth:`save` copies it to a
    destination. ``options`` is the owner's resolved option set at the time the
    upload was extracted; it does not follow later changes on the owner.
    """

    def __init__(
        self,
        filename: str | None,
        mime_type: str,
        tempfile: TempSource | None,
        options: UploadOptions = DEFAULT_UPLOAD_OPTIONS,
    ) -> None:
        self._filename = sanitize_filename(filename)
        self._mime_type = mime_type
        self._tempfile = tempfile
        self._realfile: Path | None = None
        self._options = options

    def __repr__(self) -> str:
        state = f"saved at {self._realfile}" if self.saved else "unsaved"
        return f"UploadedFile({self._filename!r}, {self._mime_type!r}, {state})"

    @property
    def filename(self) -> str | None:
        """Suggested file name."""
        return self._filename

    @filename.setter
    def filename(self, name: str) -> None:
        self._filename = sanitize_filename(name)

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @property
    def options(self) -> UploadOptions:
        return self._options

    @property
    def tempfile(self) -> TempSource | None:
        return self._tempfile

    @property
    def saved(self) -> bool:
        return self._realfile is not None

    @property
    def path(self) -> Path | None:
        """Destination of the saved file, ``None`` until :meth:`save` succeeds."""
        return self._realfile if self.saved else None

    def save(self, path: str | os.PathLike[str] | None = None, **overrides: Any) -> Path:
        """Save the uploaded file to ``path``.

        Without ``path`` the destination is ``default_upload_dir / filename``.
        Keyword ``overrides`` replace the stored options for this call only.

        A failure while copying leaves whatever was already written on disk.
        """
        opts = self._options.merge(overrides)
        if path is None:
            path = self._default_path(opts)
        dest = normalize_path(path)

        if dest.exists() and not opts.allow_overwrite:
            raise OverwriteDeniedError(dest)
        if not self._source_readable():
            raise SourceUnreadableError(self._tempfile)
        if not _writable(dest):
            raise DestinationUnwritableError(dest)

        with self._open_source() as src, dest.open("wb") as out:
            shutil.copyfileobj(src, out, st.UPLOAD_CHUNK_SIZE)

        self._realfile = dest
        logger.info("Saved uploaded file", icon=LogIcon.UPLOAD, upload=self._filename, path=str(dest))

        if opts.unlink_tempfile:
            self.unlink_tempfile()
        return dest

    def unlink_tempfile(self) -> None:
        """Delete the temporary file backing this upload immediately."""
        source = self._source_path()
        if self._tempfile is not None and not isinstance(self._tempfile, (str, Path)):
            self._tempfile.close()
        if source is not None:
            source.unlink(missing_ok=True)
            logger.debug("Unlinked temporary file", icon=LogIcon.CLEANUP, tempfile=str(source))
        self._tempfile = None

    def _default_path(self, opts: UploadOptions) -> Path:
        if opts.default_upload_dir is None:
            raise MissingConfigError()
        if not self._filename:
            raise MissingFilenameError()
        return Path(opts.resolve_upload_dir()) / self._filename

    def _source_path(self) -> Path | None:
        """Filesystem location of the temp source, when it has one."""
        match self._tempfile:
            case None:
                return None
            case str() | Path():
                return Path(self._tempfile)
            case _:
                name = getattr(self._tempfile, "name", None)
                return Path(name) if isinstance(name, str) and os.path.isabs(name) else None

    def _source_readable(self) -> bool:
        if self._tempfile is None:
            return False
        source = self._source_path()
        if source is not None:
            return source.is_file() and os.access(source, os.R_OK)
        return not getattr(self._tempfile, "closed", False) and self._tempfile.readable()  # type: ignore[union-attr]

    @contextmanager
    def _open_source(self) -> Generator[IO[bytes], None, None]:
        """Open the temp source for reading from its first byte."""
        source = self._source_path()
        if source is not None:
            with source.open("rb") as handle:
                yield handle
            return
        handle = self._tempfile
        handle.seek(0)  # type: ignore[union-attr]
        yield handle  # type: ignore[misc]


def _writable(dest: Path) -> bool:
    """Whether ``dest`` can be written: the file itself, or a new file in its directory."""
    if dest.exists() and os.access(dest, os.W_OK):
        return True
    parent = dest.parent
    return parent.exists() and os.access(parent, os.W_OK)
