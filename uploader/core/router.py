"""Router with automatic body parsing, upload extraction and response handling."""

import asyncio
import inspect
import mimetypes
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any
from uuid import uuid4

import orjson
from asgi_correlation_id import correlation_id
from pydantic import BaseModel, ValidationError
from robyn import Request, Response, SubRouter, status_codes
from robyn.robyn import HttpMethod
from robyn.types import Body

from uploader.core.exceptions import UploadError
from uploader.core.handler import UploadHandler
from uploader.core.logger import LogIcon, logger
from uploader.core.scope import call_scope, uploaded_files
from uploader.core.settings import settings as st
from uploader.models.core import BodyType, ParamBag, UploadDescriptor, UploadedFiles

FILE_UPLOAD_ENDPOINTS: set[str] = set()

REQUEST_ID_HEADER = "x-request-id"


def parse_endpoint_signature(
    sig: inspect.Signature,
) -> tuple[dict[str, tuple[BodyType, type | None]], set[str]]:
    """Parse function signature for body and upload parameters."""
    parsed: dict[str, tuple[BodyType, type | None]] = {}
    upload_params: set[str] = set()

    for name, param in sig.parameters.items():
        annotation = param.annotation

        if annotation is UploadedFiles:
            upload_params.add(name)
            continue

        match annotation:
            case type() if issubclass(annotation, BaseModel):
                parsed[name] = (BodyType.PYDANTIC, type(annotation.__name__, (annotation, Body), {}))
            case type() if issubclass(annotation, Body):
                parsed[name] = (BodyType.JSONABLE, annotation)
            case type() if annotation is dict:
                parsed[name] = (BodyType.JSONABLE, None)
            case _ if name == "body":
                parsed[name] = (BodyType.JSONABLE, None)

    return parsed, upload_params


def parse_request_body(
    body_config: dict[str, tuple[BodyType, type | None]],
    kwargs: dict[str, Any],
) -> Response | None:
    """Parse JSON/Pydantic body parameters."""
    for param_name, (body_type, model_cls) in body_config.items():
        if param_name not in kwargs:
            continue
        raw = kwargs[param_name]
        if not isinstance(raw, (str, bytes)):
            continue

        match body_type:
            case BodyType.PYDANTIC if model_cls:
                try:
                    kwargs[param_name] = model_cls.model_validate_json(raw)  # type: ignore[union-attr]
                except ValidationError as ex:
                    return Response(status_code=422, headers={}, description=ex.json())
            case BodyType.JSONABLE:
                try:
                    kwargs[param_name] = orjson.loads(raw)
                except orjson.JSONDecodeError as ex:
                    return Response(status_code=422, headers={}, description=str(ex))
            case BodyType.RAW:
                pass
    return None


def spool_upload(filename: str, data: bytes) -> UploadDescriptor:
    """Write an uploaded file's bytes to a named temp file and describe it."""
    with NamedTemporaryFile(prefix=st.UPLOAD_TEMP_PREFIX, delete=False) as handle:
        handle.write(data)
    mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    head = (
        f'Content-Disposition: form-data; name="{filename}"; filename="{filename}"\r\n'
        f"Content-Type: {mime_type}\r\n"
    )
    return UploadDescriptor(filename=filename, type=mime_type, name=filename, tempfile=Path(handle.name), head=head)


def build_param_bag(request: Request) -> tuple[ParamBag, list[Path]]:
    """Collect query, form and file parameters of ``request`` into one bag.

    Returns the bag and the temp files created for the uploads in it.
    """
    params: ParamBag = {}

    query = getattr(request, "query_params", None)
    if query is not None:
        raw_query = query.to_dict() if hasattr(query, "to_dict") else dict(query)
        for key, values in raw_query.items():
            values = list(values) if isinstance(values, (list, tuple)) else [values]
            params[key] = values[0] if len(values) == 1 else values

    params.update(getattr(request, "form_data", None) or {})

    tempfiles: list[Path] = []
    try:
        for filename, data in (getattr(request, "files", None) or {}).items():
            descriptor = spool_upload(filename, data)
            tempfiles.append(descriptor.tempfile)  # type: ignore[arg-type]
            params[filename] = descriptor
    except OSError:
        for tempfile in tempfiles:
            tempfile.unlink(missing_ok=True)
        raise

    return params, tempfiles


def upload_error_response(error: UploadError) -> Response:
    return Response(
        status_code=error.status_code,
        headers={"content-type": "application/json"},
        description=orjson.dumps(error.to_dict()).decode(),
    )


def run_upload_hooks(uploads: UploadHandler, action: str) -> Response | None:
    """Run the owner's upload hooks for ``action``; an error response if they fail."""
    try:
        uploads.before_action(action)
    except UploadError as ex:
        logger.warning("Upload handling failed", icon=LogIcon.FORBIDDEN, action=action, error=str(ex))
        return upload_error_response(ex)
    return None


async def run_with_uploads(
    handler: Callable,
    request: Request,
    h_kwargs: dict[str, Any],
    action: str,
    upload_params: set[str],
    uploads: UploadHandler | None,
) -> Any:
    """Call ``handler`` inside a call scope over ``request``'s parameters.

    Spooling and saving run in a worker thread. The thread gets a copy of the
    current context, so hooks see and update this call's scope.
    """
    params, tempfiles = await asyncio.to_thread(build_param_bag, request)
    with call_scope(params, tempfiles):
        if uploads and (error := await asyncio.to_thread(run_upload_hooks, uploads, action)):
            return error

        for name in upload_params:
            h_kwargs[name] = uploaded_files()

        return await handler(**h_kwargs)


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=result.model_dump_json(indent=4),
            )
        case dict():
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "application/json"},
                description=orjson.dumps(result, default=str).decode(),
            )
        case _:
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={},
                description=str(result),
            )


HTTP_METHODS = (
    HttpMethod.GET,
    HttpMethod.POST,
    HttpMethod.PUT,
    HttpMethod.DELETE,
    HttpMethod.PATCH,
    HttpMethod.HEAD,
    HttpMethod.OPTIONS,
    HttpMethod.TRACE,
    HttpMethod.CONNECT,
)


def _create_method_wrapper(
    original_method: Callable,
    router_prefix: str = "",
    uploads: UploadHandler | None = None,
) -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, **kwargs) -> Callable:
        endpoint = args[0] if args else kwargs.get("endpoint", "")
        decorator = original_method(*args, **kwargs)

        def handler_decorator(handler: Callable) -> Callable:
            sig = inspect.signature(handler)
            body_config, upload_params = parse_endpoint_signature(sig)
            has_request_param = "request" in sig.parameters
            action = handler.__name__

            if upload_params or (uploads and uploads.handles(action)):
                full_path = f"{router_prefix}{endpoint}".replace("//", "/")
                FILE_UPLOAD_ENDPOINTS.add(full_path)

            @wraps(handler)
            async def wrapped_handler(request: Request, **h_kwargs):
                if error := parse_request_body(body_config, h_kwargs):
                    return error

                # Pass request to handler only if it declared it
                if has_request_param:
                    h_kwargs["request"] = request

                token = correlation_id.set(request.headers.get(REQUEST_ID_HEADER) or uuid4().hex)
                try:
                    if upload_params or (uploads and uploads.handles(action)):
                        result = await run_with_uploads(handler, request, h_kwargs, action, upload_params, uploads)
                    else:
                        result = await handler(**h_kwargs)
                except UploadError as ex:
                    return upload_error_response(ex)
                finally:
                    correlation_id.reset(token)

                return parse_response(result)

            # Build signature: always include request for Robyn injection
            new_params = [inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request)]
            for name, param in sig.parameters.items():
                if name == "request" or name in upload_params:
                    continue
                if name in body_config:
                    new_params.append(param.replace(annotation=body_config[name][1]))
                else:
                    new_params.append(param)

            wrapped_handler.__signature__ = sig.replace(parameters=new_params)  # type: ignore[attr-defined]
            return decorator(wrapped_handler)

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """Enhanced SubRouter with body parsing, upload handling and response handling.

    Pass ``uploads`` to apply an :class:`UploadHandler`'s hooks to the router's
    handlers, matched by handler function name.
    """

    def __init__(self, *args, uploads: UploadHandler | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._prefix = kwargs.get("prefix", "")
        self.uploads = uploads
        self._wrap_methods()

    def _wrap_methods(self) -> None:
        """Wrap HTTP methods with parsing logic."""
        for method in HTTP_METHODS:
            method_name = str(method).split(".")[-1].lower()
            if hasattr(self, method_name):
                original_method = getattr(self, method_name)
                wrapped_method = _create_method_wrapper(original_method, self._prefix, self.uploads)
                setattr(self, method_name, wrapped_method)
