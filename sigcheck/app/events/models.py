from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class SignatureCheckEventType(str, Enum):
    """
    Phases of one signature check, in emission order.

    The two extraction events run concurrently and may arrive in either
    order. CHECK_FAILED replaces every event after the failing phase.
    """

    CHECK_STARTED = "check_started"
    PACKAGE_OPENED = "package_opened"
    SIGNATURE_LINES_EXTRACTED = "signature_lines_extracted"
    SIGNER_IDENTITIES_EXTRACTED = "signer_identities_extracted"
    CORRELATION_COMPLETED = "correlation_completed"
    CHECK_COMPLETED = "check_completed"
    CHECK_FAILED = "check_failed"


class SignatureCheckEvent(BaseModel):
    """One phase transition of a check, keyed by the request correlation id."""

    event_id: UUID = Field(default_factory=uuid4)
    check_id: str = Field(..., description="Request correlation id")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: SignatureCheckEventType

    # Counts, policy name or exception type, depending on the phase.
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(frozen=True, extra="forbid")
