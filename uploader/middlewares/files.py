"""OpenAPI patching so upload endpoints are documented as multipart/form-data."""

from collections.abc import Iterable

import orjson
from robyn import Response

from uploader.core.logger import LogIcon, logger
from uploader.core.router import FILE_UPLOAD_ENDPOINTS
from uploader.middlewares.base import BaseMiddleware

MULTIPART_REQUEST_BODY = {
    "content": {
        "multipart/form-data": {
            "schema": {
                "type": "object",
                "additionalProperties": {
                    "type": "string",
                    "format": "binary",
                    "description": "Uploaded file, keyed by field name",
                },
            }
        }
    },
    "required": True,
}


def patch_openapi_spec(spec: dict, endpoints: Iterable[str]) -> dict:
    """Replace the request body of every operation under ``endpoints`` with a multipart body."""
    paths = spec.get("paths", {})
    for endpoint in endpoints:
        for operation in paths.get(endpoint, {}).values():
            if isinstance(operation, dict):
                operation["requestBody"] = MULTIPART_REQUEST_BODY
    return spec


class FileUploadOpenAPIMiddleware(BaseMiddleware):
    """Patches OpenAPI responses to use multipart/form-data for upload endpoints."""

    endpoints = frozenset(["/openapi.json"])

    def after(self, response: Response) -> Response:
        if not FILE_UPLOAD_ENDPOINTS:
            return response

        try:
            spec = orjson.loads(response.description)
        except orjson.JSONDecodeError as ex:
            logger.warning("OpenAPI document is not valid JSON", icon=LogIcon.WARNING, error=str(ex))
            return response

        response.description = orjson.dumps(patch_openapi_spec(spec, FILE_UPLOAD_ENDPOINTS)).decode()
        return response
