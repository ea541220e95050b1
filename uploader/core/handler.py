"""Owner-level registration of automatic upload handling."""

from collections.abc import Mapping
from typing import Any

from uploader.core.classifier import Pattern, classify
from uploader.core.exceptions import AutosaveError, UploadError, UploadScopeError
from uploader.core.logger import LogIcon, logger
from uploader.core.options import DEFAULT_UPLOAD_OPTIONS, UploadOptions
from uploader.core.scope import current_scope, uploaded_files
from uploader.models.core import UploadedFiles

ActionSpec = str | tuple[str, Pattern | None]


class UploadHandler:
    """Upload handling policy shared by every action of one owner (a router, a controller).

    Example::

        uploads = UploadHandler().upload_options(
            default_upload_dir=lambda: f"/uploads/{current_user()}",
            autosave=True,
        )
        uploads.handle_uploads_for("avatar", ("documents", r"^doc"))
    """

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        self._options = DEFAULT_UPLOAD_OPTIONS.merge(options)
        self._all_hooks: list[Pattern | None] = []
        self._hooks: dict[str, list[Pattern | None]] = {}

    @property
    def options(self) -> UploadOptions:
        return self._options

    def upload_options(self, **options: Any) -> "UploadHandler":
        """Set the owner's options on top of the global defaults. Returns self for chaining.

        Only files extracted after this call see the new options.
        """
        self._options = DEFAULT_UPLOAD_OPTIONS.merge(options)
        return self

    def handle_all_uploads(self, pattern: Pattern | None = None) -> "UploadHandler":
        """Extract uploads matching ``pattern`` before every action."""
        self._all_hooks.append(pattern)
        return self

    def handle_uploads_for(self, *actions: ActionSpec) -> "UploadHandler":
        """Extract uploads before the named actions.

        Each action is either a name or a ``(name, pattern)`` pair.
        """
        for action in actions:
            name, pattern = (action, None) if isinstance(action, str) else action
            self._hooks.setdefault(name, []).append(pattern)
        return self

    def hooks_for(self, action: str) -> list[Pattern | None]:
        return [*self._all_hooks, *self._hooks.get(action, [])]

    def handles(self, action: str) -> bool:
        return bool(self.hooks_for(action))

    def before_action(self, action: str) -> UploadedFiles:
        """Run every hook registered for ``action`` and return the call's uploads."""
        for pattern in self.hooks_for(action):
            self.get_uploaded_files(pattern)
        return uploaded_files()

    def get_uploaded_files(self, pattern: Pattern | None = None) -> UploadedFiles:
        """Extract uploads from the current call's parameters.

        Saves them right away when the owner has ``autosave`` enabled.
        """
        scope = current_scope()
        if scope is None:
            raise UploadScopeError("No upload call scope is active")

        extracted = UploadedFiles(classify(scope.params, pattern, self._options))
        if extracted and self._options.autosave:
            autosave(extracted)
        return extracted

    def uploaded_files(self) -> UploadedFiles:
        return uploaded_files()


def autosave(uploads: UploadedFiles) -> None:
    """Save every upload to its default location, raising one error for all failures."""
    errors: dict[str, UploadError | OSError] = {}
    for label, upload in uploads.flatten():
        try:
            upload.save()
        except (UploadError, OSError) as ex:
            logger.error("Autosave failed", icon=LogIcon.ERROR, field=label, error=str(ex))
            errors[label] = ex
    if errors:
        raise AutosaveError(errors)
