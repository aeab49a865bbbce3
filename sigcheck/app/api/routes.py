import base64
import binascii
import json
import logging
import uuid
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from sigcheck.app.config import Settings
from sigcheck.app.coordinator.coordinator import SignatureCheckCoordinator
from sigcheck.app.errors import InvalidDocumentPayloadError
from sigcheck.app.events import SignatureCheckEventEmitter
from sigcheck.app.schemas.envelopes import (
    BinaryPayload,
    EnrichedPayload,
    ErrorResponse,
    FirstUnsignedSignerResponse,
    SignatureListResponse,
)
from sigcheck.app.schemas.signatures import DocumentSignatureReport

logger = logging.getLogger("sigcheck.api")

router = APIRouter(tags=["Signature Check"])


# =============================================================================
# Dependency providers
# =============================================================================

def get_correlation_id(
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """Extract or generate a correlation ID for end-to-end traceability."""
    if x_correlation_id and len(x_correlation_id) > 128:
        return str(uuid.uuid4())
    return x_correlation_id or str(uuid.uuid4())


def get_app_settings(request: Request) -> Settings:
    settings: Optional[Settings] = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_coordinator(request: Request) -> SignatureCheckCoordinator:
    return request.app.state.coordinator


def get_event_emitter(request: Request) -> SignatureCheckEventEmitter:
    return request.app.state.event_emitter


# =============================================================================
# Helpers
# =============================================================================

def _json_response(
    model: BaseModel, correlation_id: str, status_code: int = status.HTTP_200_OK
) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True),
        headers={"X-Correlation-ID": correlation_id},
    )


def _error_response(
    status_code: int, message: str, correlation_id: str
) -> ORJSONResponse:
    return _json_response(ErrorResponse(error=message), correlation_id, status_code)


def _payload_too_large(settings: Settings, correlation_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"Document exceeds the {settings.max_document_size_mb}MB limit.",
        headers={"X-Correlation-ID": correlation_id},
    )


async def _read_json(
    request: Request, settings: Settings, correlation_id: str
) -> Any:
    """
    Bounded read of the request body, then JSON parse.

    Bodies over settings.max_request_body_bytes are rejected with 413
    before parsing, whether or not Content-Length is declared. An empty
    body reads as null.
    """
    max_bytes = settings.max_request_body_bytes

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise _payload_too_large(settings, correlation_id)

    raw = bytearray()
    async for chunk in request.stream():
        raw.extend(chunk)
        if len(raw) > max_bytes:
            raise _payload_too_large(settings, correlation_id)

    return json.loads(raw) if raw.strip() else None


def _decode_document(content: str, settings: Settings, correlation_id: str) -> bytes:
    """
    Decode base64 document content.

    Whitespace (line-wrapped base64) is tolerated; any other non-alphabet
    character is a decoding failure.
    """
    try:
        document_bytes = base64.b64decode("".join(content.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidDocumentPayloadError(
            "Document content is not valid base64"
        ) from exc

    if len(document_bytes) > settings.max_document_size_bytes:
        raise _payload_too_large(settings, correlation_id)
    return document_bytes


async def _run_check(
    *,
    content: str,
    settings: Settings,
    coordinator: SignatureCheckCoordinator,
    emitter: SignatureCheckEventEmitter,
    correlation_id: str,
) -> DocumentSignatureReport:
    document_bytes = _decode_document(content, settings, correlation_id)

    return await coordinator.run_check(
        document_bytes=document_bytes,
        check_id=correlation_id,
        emitter=emitter,
    )


# =============================================================================
# POST /check-next-signer
# =============================================================================

@router.post(
    "/check-next-signer",
    summary="Return the first signature line that has not been signed",
    response_model=FirstUnsignedSignerResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing document content"},
        413: {"description": "Payload too large"},
        500: {"model": ErrorResponse, "description": "Processing failure"},
    },
)
async def check_next_signer(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
    coordinator: Annotated[SignatureCheckCoordinator, Depends(get_coordinator)],
    emitter: Annotated[SignatureCheckEventEmitter, Depends(get_event_emitter)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> ORJSONResponse:
    """
    Accepts a binary payload {"$content-type", "$content"} where $content
    is the base64-encoded .docx package.
    """
    logger.info(
        "next_signer_check_received",
        extra={"trace_id": correlation_id},
    )

    try:
        data = await _read_json(request, settings, correlation_id)

        payload = BinaryPayload.model_validate(data) if data is not None else None

        if payload is None or not (payload.content or "").strip():
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                "Missing base64 document content.",
                correlation_id,
            )

        report = await _run_check(
            content=payload.content,
            settings=settings,
            coordinator=coordinator,
            emitter=emitter,
            correlation_id=correlation_id,
        )

        return _json_response(
            FirstUnsignedSignerResponse(
                first_unsigned_signer=report.first_unsigned_signer
            ),
            correlation_id,
        )

    except HTTPException:
        raise

    except Exception as exc:
        logger.exception(
            "next_signer_check_failure",
            extra={
                "trace_id": correlation_id,
                "error_type": type(exc).__name__,
            },
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to process .docx content.",
            correlation_id,
        )


# =============================================================================
# POST /check-signatures
# =============================================================================

@router.post(
    "/check-signatures",
    summary="List every signature line with its signed status",
    response_model=SignatureListResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing document content"},
        413: {"description": "Payload too large"},
        500: {"model": ErrorResponse, "description": "Processing failure"},
    },
)
async def check_signatures(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
    coordinator: Annotated[SignatureCheckCoordinator, Depends(get_coordinator)],
    emitter: Annotated[SignatureCheckEventEmitter, Depends(get_event_emitter)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> ORJSONResponse:
    """
    Accepts an enriched envelope {"statusCode", "headers", "body"} whose
    body is the binary payload carrying the base64-encoded .docx package.
    """
    logger.info(
        "signature_list_check_received",
        extra={"trace_id": correlation_id},
    )

    try:
        data = await _read_json(request, settings, correlation_id)

        envelope = EnrichedPayload.model_validate(data) if data is not None else None

        if (
            envelope is None
            or envelope.body is None
            or envelope.body.content is None
        ):
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                "Missing or invalid document content.",
                correlation_id,
            )

        report = await _run_check(
            content=envelope.body.content,
            settings=settings,
            coordinator=coordinator,
            emitter=emitter,
            correlation_id=correlation_id,
        )

        logger.info(
            "signature_list_check_success",
            extra={
                "trace_id": correlation_id,
                "signature_count": report.signature_count,
                "signature_lines": len(report.signatures),
            },
        )

        return _json_response(
            SignatureListResponse(
                signature_count=report.signature_count,
                signatures=report.signatures,
            ),
            correlation_id,
        )

    except HTTPException:
        raise

    except Exception as exc:
        logger.exception(
            "signature_list_check_failure",
            extra={
                "trace_id": correlation_id,
                "error_type": type(exc).__name__,
            },
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to process document.",
            correlation_id,
        )
