from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from csv_relay.api.responses import build_upload_response
from csv_relay.core.config import Settings, get_settings
from csv_relay.core.metrics import UPLOAD_OUTCOMES
from csv_relay.ingestion.pipeline import PeekReplayPipeline
from csv_relay.ingestion.sources import multipart_file_chunks

__all__: list[str] = [
    "router",
]

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["upload"])

SETTINGS_DEP: Settings = Depends(get_settings)

# The body is parsed by hand so FastAPI cannot describe it from the signature.
_UPLOAD_OPENAPI: dict = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "required": ["file"],
                    "properties": {"file": {"type": "string", "format": "binary"}},
                }
            }
        },
    },
    "responses": {
        "200": {"content": {"text/plain": {}}, "description": "The upload, relayed."},
        "400": {"content": {"text/plain": {}}, "description": "Rejected upload."},
        "415": {"content": {"text/plain": {}}, "description": "Not multipart."},
    },
}


@router.post(
    "/upload",
    summary="Validate the first bytes of an uploaded CSV and stream it back.",
    response_class=Response,
    openapi_extra=_UPLOAD_OPENAPI,
)
async def upload_csv(
    request: Request,
    settings: Settings = SETTINGS_DEP,
) -> Response:
    """
    Peek at the first ``VALIDATION_BYTES`` of the ``file`` part and either
    reject the upload with a plain-text reason or stream it back unchanged.
    The body is never held in memory as a whole.
    """
    source = multipart_file_chunks(request, field_name=settings.upload_field)
    pipeline = PeekReplayPipeline(source, validation_bytes=settings.validation_bytes)

    outcome = await pipeline.inspect()
    UPLOAD_OUTCOMES.labels(outcome=outcome.kind.value).inc()
    logger.info(
        "upload_inspected",
        outcome=outcome.kind.value,
        inspected_bytes=outcome.inspected_bytes,
        validation_bytes=settings.validation_bytes,
    )
    return build_upload_response(outcome, pipeline)
