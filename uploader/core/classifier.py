"""Extraction of uploaded files from a request parameter bag."""

import re

from uploader.core.logger import LogIcon, logger
from uploader.core.options import DEFAULT_UPLOAD_OPTIONS, UploadOptions
from uploader.core.scope import current_scope
from uploader.core.uploaded_file import UploadedFile
from uploader.models.core import ParamBag, as_upload_descriptor, is_upload_descriptor

Pattern = str | re.Pattern[str]


def build_uploaded_file(value, options: UploadOptions) -> UploadedFile:
    descriptor = as_upload_descriptor(value)
    return UploadedFile(descriptor.filename, descriptor.type, descriptor.tempfile, options)


def _matches(pattern: Pattern | None, key: str) -> bool:
    if pattern is None:
        return True
    return re.search(pattern, key) is not None


def classify(
    params: ParamBag,
    pattern: Pattern | None = None,
    options: UploadOptions = DEFAULT_UPLOAD_OPTIONS,
) -> dict[str, UploadedFile | list[UploadedFile]]:
    """Convert upload parameters in ``params`` into :class:`UploadedFile` objects.

    Matched parameters are removed from ``params`` in place. A list-valued
    parameter keeps its non-upload elements, in order, and is removed only once
    nothing else is left in it. When ``pattern`` is given, only parameter names
    matching it (``re.search``) are considered.

    Every extracted file gets ``options`` as its option snapshot. The result maps
    parameter names to a single file, or to a list of files for list-valued
    parameters, and is also recorded on the active call scope when non-empty.
    """
    extracted: dict[str, UploadedFile | list[UploadedFile]] = {}

    for key in list(params):
        if not _matches(pattern, key):
            continue
        value = params[key]

        if isinstance(value, list):
            file_indices = [idx for idx, elem in enumerate(value) if is_upload_descriptor(elem)]
            if not file_indices:
                continue
            extracted[key] = [build_uploaded_file(value[idx], options) for idx in file_indices]
            for idx in reversed(file_indices):
                del value[idx]
            if not value:
                del params[key]
        elif is_upload_descriptor(value):
            extracted[key] = build_uploaded_file(value, options)
            del params[key]

    if extracted:
        logger.debug("Extracted uploaded files", icon=LogIcon.DETECTION, fields=list(extracted))
        if scope := current_scope():
            scope.record(extracted)
    return extracted
