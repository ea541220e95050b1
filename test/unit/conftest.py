"""Test fixtures for robyn-uploader unit tests."""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from uploader.models.core import UploadDescriptor


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request."""

    _data: dict = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value


@dataclass
class MockQueryParams:
    """Mock QueryParams object for Robyn Request."""

    _data: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, list[str]]:
        return self._data


@dataclass
class MockRequest:
    """Mock Request object for Robyn."""

    _body: dict | str = field(default_factory=dict)
    headers: MockHeaders = field(default_factory=MockHeaders)
    query_params: MockQueryParams = field(default_factory=MockQueryParams)
    form_data: dict[str, str] = field(default_factory=dict)
    files: dict[str, bytes] = field(default_factory=dict)
    method: str = "POST"
    path: str = "/"

    def json(self) -> dict:
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body


@pytest.fixture
def make_mock_request() -> Callable[..., MockRequest]:
    """Factory fixture to create mock requests."""

    def _make(
        query: dict[str, list[str]] | None = None,
        form: dict[str, str] | None = None,
        files: dict[str, bytes] | None = None,
        headers: dict[str, str] | None = None,
    ) -> MockRequest:
        return MockRequest(
            headers=MockHeaders(headers or {}),
            query_params=MockQueryParams(query or {}),
            form_data=form or {},
            files=files or {},
        )

    return _make


# -----------------------------------------------------------------------------
# Upload fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    """Empty destination directory for saved uploads."""
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def make_descriptor(tmp_path: Path) -> Callable[..., UploadDescriptor]:
    """Factory fixture writing a temp file and describing it as a raw upload."""
    spool = tmp_path / "spool"
    spool.mkdir()
    counter = iter(range(1_000_000))

    def _make(filename: str = "me.png", content: bytes = b"payload", mime_type: str = "image/png") -> UploadDescriptor:
        tempfile = spool / f"upload-{next(counter)}"
        tempfile.write_bytes(content)
        return UploadDescriptor(
            filename=filename,
            type=mime_type,
            name="file",
            tempfile=tempfile,
            head=f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n',
        )

    return _make


@pytest.fixture
def make_raw_upload(make_descriptor) -> Callable[..., dict]:
    """Factory fixture producing the plain-dict shape of a raw upload record."""

    def _make(filename: str = "me.png", content: bytes = b"payload") -> dict:
        descriptor = make_descriptor(filename, content)
        return {
            "filename": descriptor.filename,
            "type": descriptor.type,
            "name": descriptor.name,
            "tempfile": descriptor.tempfile,
            "head": descriptor.head,
        }

    return _make
