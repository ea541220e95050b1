"""Core models for request parameters and uploaded files."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uploader.core.uploaded_file import UploadedFile

# Keys every raw upload record carries, used as a structural fingerprint.
UPLOAD_DESCRIPTOR_KEYS = frozenset({"filename", "type", "name", "tempfile", "head"})

TempSource = str | Path | IO[bytes]
ParamBag = dict[str, Any]


class BodyType(StrEnum):
    """Body content type classification for request parsing."""

    PYDANTIC = "pydantic"
    JSONABLE = "jsonable"
    RAW = "raw"


@dataclass(frozen=True, slots=True)
class UploadDescriptor:
    """One raw uploaded file as found in a parameter bag, before classification."""

    filename: str | None
    type: str
    name: str
    tempfile: TempSource
    head: str = ""

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "UploadDescriptor":
        return cls(
            filename=record["filename"],
            type=record["type"],
            name=record["name"],
            tempfile=record["tempfile"],
            head=record["head"],
        )


def is_upload_descriptor(value: Any) -> bool:
    """Whether ``value`` represents an uploaded file.

    Either an explicit ``UploadDescriptor`` or a mapping exposing all five keys a
    raw upload record carries. Only filename, type and tempfile are consumed;
    name and head are required purely to avoid treating unrelated dict-shaped
    parameters as uploads.
    """
    if isinstance(value, UploadDescriptor):
        return True
    return isinstance(value, Mapping) and UPLOAD_DESCRIPTOR_KEYS <= value.keys()


def as_upload_descriptor(value: UploadDescriptor | Mapping[str, Any]) -> UploadDescriptor:
    if isinstance(value, UploadDescriptor):
        return value
    return UploadDescriptor.from_mapping(value)


class UploadedFiles(Mapping[str, "UploadedFile | list[UploadedFile]"]):
    """Read-only view over the uploads extracted for one call, keyed by field name."""

    __slots__ = ("_files",)

    def __init__(self, files: Mapping[str, "UploadedFile | list[UploadedFile]"] | None = None) -> None:
        self._files = dict(files or {})

    def __getitem__(self, name: str) -> "UploadedFile | list[UploadedFile]":
        return self._files[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"UploadedFiles({self._files!r})"

    def flatten(self) -> Iterator[tuple[str, "UploadedFile"]]:
        """Yield ``(label, file)`` pairs, labelling list members as ``name[index]``."""
        for name, value in self._files.items():
            if isinstance(value, list):
                for idx, upload in enumerate(value):
                    yield f"{name}[{idx}]", upload
            else:
                yield name, value


EMPTY_UPLOADS = UploadedFiles()
