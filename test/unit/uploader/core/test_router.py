"""Tests for the router: body parsing, upload bags, responses and the request wrapper."""

import asyncio
import inspect
import time
from pathlib import Path

import orjson
import pytest
from asgi_correlation_id import correlation_id
from pydantic import BaseModel
from robyn import Response

from uploader.core import router as router_module
from uploader.core.exceptions import MissingFilenameError, OverwriteDeniedError
from uploader.core.handler import UploadHandler
from uploader.core.router import (
    BodyType,
    _create_method_wrapper,
    build_param_bag,
    parse_endpoint_signature,
    parse_request_body,
    parse_response,
    run_upload_hooks,
    upload_error_response,
)
from uploader.core.scope import call_scope
from uploader.core.uploaded_file import UploadedFile
from uploader.models.core import UploadDescriptor, UploadedFiles


# -----------------------------------------------------------------------------
# Test Models
# -----------------------------------------------------------------------------


class SampleModel(BaseModel):
    """Sample Pydantic model for testing."""

    name: str
    value: int


# -----------------------------------------------------------------------------
# parse_endpoint_signature Tests
# -----------------------------------------------------------------------------


class TestParseEndpointSignature:
    """Tests for parse_endpoint_signature function."""

    def test_pydantic_model_annotation(self) -> None:
        """Verify Pydantic model annotations are detected."""

        async def handler(body: SampleModel) -> None:
            pass

        body_config, upload_params = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["body"][0] == BodyType.PYDANTIC
        assert upload_params == set()

    def test_dict_annotation(self) -> None:
        """Verify dict annotations are detected as JSONABLE."""

        async def handler(data: dict) -> None:
            pass

        body_config, _ = parse_endpoint_signature(inspect.signature(handler))

        assert body_config["data"][0] == BodyType.JSONABLE

    def test_no_body_parameters(self) -> None:
        """Verify handlers without body params return empty config."""

        async def handler(request, global_dependencies) -> None:
            pass

        body_config, upload_params = parse_endpoint_signature(inspect.signature(handler))

        assert body_config == {}
        assert upload_params == set()

    def test_uploaded_files_annotation(self) -> None:
        """Verify UploadedFiles annotations are detected as upload params."""

        async def handler(files: UploadedFiles, body: dict) -> None:
            pass

        body_config, upload_params = parse_endpoint_signature(inspect.signature(handler))

        assert upload_params == {"files"}
        assert "files" not in body_config


# -----------------------------------------------------------------------------
# parse_request_body Tests
# -----------------------------------------------------------------------------


class TestParseRequestBody:
    """Tests for parse_request_body function."""

    def test_pydantic_valid_json(self) -> None:
        kwargs = {"body": '{"name": "test", "value": 42}'}

        error = parse_request_body({"body": (BodyType.PYDANTIC, SampleModel)}, kwargs)

        assert error is None
        assert kwargs["body"] == SampleModel(name="test", value=42)

    def test_pydantic_invalid_json(self) -> None:
        error = parse_request_body({"body": (BodyType.PYDANTIC, SampleModel)}, {"body": '{"name": "test"}'})

        assert isinstance(error, Response)
        assert error.status_code == 422

    def test_jsonable_invalid_json(self) -> None:
        error = parse_request_body({"data": (BodyType.JSONABLE, None)}, {"data": "not valid json"})

        assert isinstance(error, Response)
        assert error.status_code == 422

    def test_missing_param_ignored(self) -> None:
        assert parse_request_body({"body": (BodyType.PYDANTIC, SampleModel)}, {}) is None


# -----------------------------------------------------------------------------
# build_param_bag Tests
# -----------------------------------------------------------------------------


class TestBuildParamBag:
    """Tests for building parameter bags from Robyn requests."""

    def test_query_values(self, make_mock_request) -> None:
        """Verify single query values become scalars and repeated ones lists."""
        request = make_mock_request(query={"page": ["2"], "tag": ["a", "b"]})

        params, tempfiles = build_param_bag(request)

        assert params == {"page": "2", "tag": ["a", "b"]}
        assert tempfiles == []

    def test_form_fields(self, make_mock_request) -> None:
        params, _ = build_param_bag(make_mock_request(form={"title": "hello"}))
        assert params == {"title": "hello"}

    def test_files_are_spooled(self, make_mock_request) -> None:
        """Verify uploaded bytes are written to temp files described by UploadDescriptor."""
        request = make_mock_request(files={"me.png": b"image"})

        params, tempfiles = build_param_bag(request)
        try:
            descriptor = params["me.png"]
            assert isinstance(descriptor, UploadDescriptor)
            assert descriptor.filename == "me.png"
            assert descriptor.type == "image/png"
            assert 'filename="me.png"' in descriptor.head
            assert tempfiles == [descriptor.tempfile]
            assert Path(descriptor.tempfile).read_bytes() == b"image"
        finally:
            for tempfile in tempfiles:
                tempfile.unlink(missing_ok=True)

    def test_unknown_extension_defaults_to_octet_stream(self, make_mock_request) -> None:
        params, tempfiles = build_param_bag(make_mock_request(files={"blob": b"x"}))
        try:
            assert params["blob"].type == "application/octet-stream"
        finally:
            for tempfile in tempfiles:
                tempfile.unlink(missing_ok=True)

    def test_spooled_tempfiles_removed_with_scope(self, make_mock_request) -> None:
        params, tempfiles = build_param_bag(make_mock_request(files={"a.txt": b"a"}))

        with call_scope(params, tempfiles):
            assert tempfiles[0].exists()

        assert not tempfiles[0].exists()

    def test_failed_spool_removes_earlier_tempfiles(self, make_mock_request, monkeypatch) -> None:
        """Verify a spooling failure leaves no temp files behind."""
        spooled: list[Path] = []
        real_spool = router_module.spool_upload

        def flaky_spool(filename: str, data: bytes) -> UploadDescriptor:
            if spooled:
                raise OSError("No space left on device")
            descriptor = real_spool(filename, data)
            spooled.append(descriptor.tempfile)
            return descriptor

        monkeypatch.setattr(router_module, "spool_upload", flaky_spool)

        with pytest.raises(OSError, match="No space left"):
            build_param_bag(make_mock_request(files={"a.txt": b"a", "b.txt": b"b"}))

        assert len(spooled) == 1
        assert not spooled[0].exists()


# -----------------------------------------------------------------------------
# Upload hooks & error responses
# -----------------------------------------------------------------------------


class TestUploadResponses:
    """Tests for run_upload_hooks and upload_error_response."""

    def test_error_response(self) -> None:
        response = upload_error_response(MissingFilenameError())

        assert response.status_code == 400
        assert orjson.loads(response.description) == {
            "error": "missing_filename",
            "detail": "Unable to save file, no filename given",
        }

    def test_hooks_success_returns_none(self, make_descriptor) -> None:
        uploads = UploadHandler().handle_uploads_for("upload")
        params = {"f": make_descriptor()}

        with call_scope(params):
            assert run_upload_hooks(uploads, "upload") is None

        assert params == {}

    def test_hooks_autosave_failure_becomes_response(self, make_descriptor, upload_dir: Path) -> None:
        (upload_dir / "me.png").write_bytes(b"old")
        uploads = (
            UploadHandler()
            .upload_options(default_upload_dir=str(upload_dir), autosave=True)
            .handle_uploads_for("upload")
        )

        with call_scope({"f": make_descriptor("me.png")}):
            response = run_upload_hooks(uploads, "upload")

        assert response is not None
        assert response.status_code == 409
        body = orjson.loads(response.description)
        assert body["error"] == "autosave_failed"
        assert set(body["fields"]) == {"f"}

    def test_overwrite_error_response(self, tmp_path: Path) -> None:
        response = upload_error_response(OverwriteDeniedError(tmp_path / "x"))
        assert response.status_code == 409


# -----------------------------------------------------------------------------
# Request wrapper Tests
# -----------------------------------------------------------------------------


def wrap_handler(handler, uploads: UploadHandler | None = None):
    """Wrap ``handler`` the way a Router route does, without registering it with Robyn."""

    def route(*args, **kwargs):
        return lambda fn: fn

    return _create_method_wrapper(route, "/wrapped", uploads)("/upload")(handler)


class TestRequestWrapper:
    """Tests for the per-request handler wrapper."""

    async def test_autosave_and_injection(self, make_mock_request, upload_dir: Path) -> None:
        """Verify hooks run by handler name, files are saved and injected."""
        uploads = (
            UploadHandler()
            .upload_options(default_upload_dir=str(upload_dir), autosave=True)
            .handle_uploads_for("upload")
        )

        async def upload(files: UploadedFiles) -> dict:
            return {"n": len(files), "saved": [f.saved for _, f in files.flatten()]}

        response = await wrap_handler(upload, uploads)(make_mock_request(files={"me.png": b"image"}))

        assert response.status_code == 200
        assert orjson.loads(response.description) == {"n": 1, "saved": [True]}
        assert (upload_dir / "me.png").read_bytes() == b"image"

    async def test_hook_failure_returns_error_response(self, make_mock_request, upload_dir: Path) -> None:
        (upload_dir / "me.png").write_bytes(b"old")
        uploads = (
            UploadHandler()
            .upload_options(default_upload_dir=str(upload_dir), autosave=True)
            .handle_uploads_for("upload")
        )
        called = []

        async def upload() -> str:
            called.append(True)
            return "ok"

        response = await wrap_handler(upload, uploads)(make_mock_request(files={"me.png": b"new"}))

        assert response.status_code == 409
        assert orjson.loads(response.description)["error"] == "autosave_failed"
        assert called == []
        assert (upload_dir / "me.png").read_bytes() == b"old"

    async def test_upload_error_from_handler(self, make_mock_request) -> None:
        """Verify an UploadError raised by the handler becomes a JSON response."""

        async def upload(files: UploadedFiles) -> str:
            raise MissingFilenameError()

        response = await wrap_handler(upload)(make_mock_request(files={"me.png": b"image"}))

        assert response.status_code == 400
        assert orjson.loads(response.description)["error"] == "missing_filename"

    async def test_spooled_tempfile_removed_after_call(self, make_mock_request) -> None:
        seen: list[Path] = []

        async def upload(files: UploadedFiles) -> str:
            tempfile = files["a.txt"].tempfile
            assert Path(tempfile).exists()
            seen.append(Path(tempfile))
            return "ok"

        uploads = UploadHandler().handle_uploads_for("upload")
        response = await wrap_handler(upload, uploads)(make_mock_request(files={"a.txt": b"a"}))

        assert response.status_code == 200
        assert len(seen) == 1
        assert not seen[0].exists()

    async def test_plain_handler_skips_upload_handling(self, make_mock_request, monkeypatch) -> None:
        """Verify a handler with no hooks and no UploadedFiles parameter never spools files."""

        def fail_bag(request):
            raise AssertionError("parameter bag must not be built")

        monkeypatch.setattr(router_module, "build_param_bag", fail_bag)

        async def ping(request) -> dict:
            return {"method": request.method}

        response = await wrap_handler(ping, UploadHandler().handle_uploads_for("upload"))(
            make_mock_request(files={"a.txt": b"a"})
        )

        assert response.status_code == 200
        assert orjson.loads(response.description) == {"method": "POST"}

    async def test_correlation_id_from_header_is_reset(self, make_mock_request) -> None:
        seen: list[str | None] = []

        async def ping() -> str:
            seen.append(correlation_id.get())
            return "ok"

        await wrap_handler(ping)(make_mock_request(headers={"x-request-id": "req-42"}))

        assert seen == ["req-42"]
        assert correlation_id.get() is None

    async def test_save_does_not_block_event_loop(self, make_mock_request, upload_dir: Path) -> None:
        """Verify other tasks keep running while an upload is being saved."""

        def slow_upload_dir() -> str:
            time.sleep(0.3)
            return str(upload_dir)

        uploads = (
            UploadHandler()
            .upload_options(default_upload_dir=slow_upload_dir, autosave=True)
            .handle_uploads_for("upload")
        )

        async def upload(files: UploadedFiles) -> str:
            return "ok"

        ticks: list[float] = []

        async def ticker() -> None:
            for _ in range(20):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        _, response = await asyncio.gather(
            ticker(),
            wrap_handler(upload, uploads)(make_mock_request(files={"me.png": b"image"})),
        )

        assert response.status_code == 200
        assert (upload_dir / "me.png").exists()
        assert max(b - a for a, b in zip(ticks, ticks[1:])) < 0.2


# -----------------------------------------------------------------------------
# parse_response Tests
# -----------------------------------------------------------------------------


class TestParseResponse:
    """Tests for parse_response function."""

    def test_response_passthrough(self) -> None:
        original = Response(status_code=201, headers={}, description="created")
        assert parse_response(original) is original

    def test_dict_with_paths_to_json(self, tmp_path: Path) -> None:
        """Verify dicts holding paths are still serialized."""
        result = parse_response({"path": tmp_path})

        assert result.status_code == 200
        assert orjson.loads(result.description) == {"path": str(tmp_path)}

    @pytest.mark.parametrize(
        "input_val",
        [
            Response(status_code=200, headers={}, description=""),
            SampleModel(name="x", value=1),
            {"a": 1},
            "text",
            123,
        ],
    )
    def test_always_returns_response(self, input_val) -> None:
        assert isinstance(parse_response(input_val), Response)


# -----------------------------------------------------------------------------
# UploadedFiles Model Tests
# -----------------------------------------------------------------------------


class TestUploadedFilesModel:
    """Tests for UploadedFiles container."""

    def test_empty_is_falsy(self) -> None:
        assert not UploadedFiles()

    def test_mapping_access(self) -> None:
        upload = UploadedFile("a.txt", "text/plain", None)
        files = UploadedFiles({"a": upload})

        assert files
        assert files["a"] is upload
        assert files.get("missing") is None
        assert list(files.keys()) == ["a"]

    def test_flatten_labels_list_members(self) -> None:
        single = UploadedFile("a.txt", "text/plain", None)
        many = [UploadedFile("b.txt", "text/plain", None), UploadedFile("c.txt", "text/plain", None)]

        labels = [label for label, _ in UploadedFiles({"a": single, "docs": many}).flatten()]

        assert labels == ["a", "docs[0]", "docs[1]"]
