"""
HTTP request / response envelopes.

Inbound documents arrive as base64 content wrapped in a connector-style
binary payload ("$content-type" / "$content"). The check-signatures route
receives that payload nested inside an enriched envelope that also carries
the upstream status code and headers.

All inbound fields are optional: absence is reported as a 400 by the route,
not as a validation error.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sigcheck.app.schemas.signatures import SignatureStatus


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class BinaryPayload(BaseModel):
    content_type: Optional[str] = Field(None, alias="$content-type")
    content: Optional[str] = Field(None, alias="$content")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EnrichedPayload(BaseModel):
    status_code: Optional[int] = Field(None, alias="statusCode")
    headers: Optional[Dict[str, Any]] = None
    body: Optional[BinaryPayload] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FirstUnsignedSignerResponse(_WireModel):
    first_unsigned_signer: Optional[SignatureStatus] = None


class SignatureListResponse(_WireModel):
    signature_count: int
    signatures: List[SignatureStatus]


class ErrorResponse(_WireModel):
    error: str
