"""
Signature check façade and coordinator.

IMPORTANT:
The coordinator is a DUMB AUTHORITY.

It MUST NOT:
- interpret document content itself
- apply matching logic (that belongs to the correlation policy)
- retain state between requests

Its sole responsibilities are:
- opening the package
- running the two independent extractors
- handing their outputs to the correlator
- constructing the final DocumentSignatureReport

Failure policy is all-or-nothing: any parsing failure surfaces as a
DocumentProcessingError and no partial report is produced.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, List, Optional

import anyio

from sigcheck.app.checks.signature_lines import extract_signature_lines
from sigcheck.app.checks.signer_identities import extract_signer_identities
from sigcheck.app.config import Settings
from sigcheck.app.correlation.correlator import CorrelationResult, correlate
from sigcheck.app.correlation.heuristics import (
    NameContainmentHeuristic,
    SignerMatchPolicy,
)
from sigcheck.app.errors import DocumentProcessingError
from sigcheck.app.package.opc_reader import (
    DEFAULT_MAX_PART_BYTES,
    OpcPackage,
    open_package,
)
from sigcheck.app.schemas.signatures import (
    DocumentSignatureReport,
    SignatureLine,
    SignatureStatus,
    SignerIdentityExtraction,
)

# Events (observational only)
from sigcheck.app.events import (
    NullEventEmitter,
    SignatureCheckEvent,
    SignatureCheckEventEmitter,
    SignatureCheckEventType,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure façade
# ---------------------------------------------------------------------------

def _read_signature_lines(package: OpcPackage) -> List[SignatureLine]:
    return list(extract_signature_lines(package.main_body_xml()))


def _read_signer_identities(
    package: OpcPackage, tolerate_malformed_parts: bool
) -> SignerIdentityExtraction:
    return extract_signer_identities(
        package.digital_signature_origin_parts(),
        tolerate_malformed_parts=tolerate_malformed_parts,
    )


def _assemble_report(
    extraction: SignerIdentityExtraction,
    correlation: CorrelationResult,
) -> DocumentSignatureReport:
    return DocumentSignatureReport(
        is_digitally_signed=extraction.is_digitally_signed,
        signature_count=extraction.signature_count,
        signatures=correlation.statuses,
        first_unsigned_signer=correlation.first_unsigned,
    )


def build_signature_report(
    document_bytes: bytes,
    *,
    max_part_bytes: int = DEFAULT_MAX_PART_BYTES,
    tolerate_malformed_signature_parts: bool = False,
    policy: Optional[SignerMatchPolicy] = None,
) -> DocumentSignatureReport:
    """
    Full correlation report for one document.

    Deterministic for identical input. Raises DocumentProcessingError on
    any parsing failure.
    """
    with open_package(document_bytes, max_part_bytes=max_part_bytes) as package:
        lines = _read_signature_lines(package)
        extraction = _read_signer_identities(
            package, tolerate_malformed_signature_parts
        )

    return _assemble_report(extraction, correlate(lines, extraction, policy))


def check_first_unsigned_signer(
    document_bytes: bytes,
    *,
    max_part_bytes: int = DEFAULT_MAX_PART_BYTES,
    tolerate_malformed_signature_parts: bool = False,
    policy: Optional[SignerMatchPolicy] = None,
) -> Optional[SignatureStatus]:
    """First signature line, in document order, with no matching signer."""
    return build_signature_report(
        document_bytes,
        max_part_bytes=max_part_bytes,
        tolerate_malformed_signature_parts=tolerate_malformed_signature_parts,
        policy=policy,
    ).first_unsigned_signer


def check_all_signatures(
    document_bytes: bytes,
    *,
    max_part_bytes: int = DEFAULT_MAX_PART_BYTES,
    tolerate_malformed_signature_parts: bool = False,
    policy: Optional[SignerMatchPolicy] = None,
) -> DocumentSignatureReport:
    """All signature lines with their status, plus the signature count."""
    return build_signature_report(
        document_bytes,
        max_part_bytes=max_part_bytes,
        tolerate_malformed_signature_parts=tolerate_malformed_signature_parts,
        policy=policy,
    )


async def _emit(
    emitter: SignatureCheckEventEmitter, event: SignatureCheckEvent
) -> None:
    """Events are observational: a failing emitter never fails the check."""
    try:
        await emitter.emit(event)
    except Exception:
        logger.warning(
            "event_emission_failed",
            exc_info=True,
            extra={
                "check_id": event.check_id,
                "event_type": event.event_type.value,
            },
        )


# ---------------------------------------------------------------------------
# Service coordinator
# ---------------------------------------------------------------------------

class SignatureCheckCoordinator:
    """
    Async façade used by the HTTP layer.

    Execution order:
        1. Open package (worker thread)
        2. Signature line extraction || signer identity extraction
        3. Correlation
        4. Report assembly
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        policy: Optional[SignerMatchPolicy] = None,
    ) -> None:
        """
        settings=None is permitted for tests; library defaults apply.
        """
        self._max_part_bytes = (
            settings.max_part_size_bytes if settings else DEFAULT_MAX_PART_BYTES
        )
        self._tolerate_malformed_parts = (
            settings.tolerate_malformed_signature_parts if settings else False
        )
        self._policy = policy or NameContainmentHeuristic()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SignatureCheckCoordinator":
        return cls(settings=settings, policy=NameContainmentHeuristic())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_check(
        self,
        *,
        document_bytes: bytes,
        check_id: str,
        emitter: Optional[SignatureCheckEventEmitter] = None,
    ) -> DocumentSignatureReport:
        """
        Execute the full check for one document.

        Emission failures are logged and ignored; events never change the
        report or the exception raised.
        """
        emitter = emitter or NullEventEmitter()

        await _emit(
            emitter,
            SignatureCheckEvent(
                check_id=check_id,
                event_type=SignatureCheckEventType.CHECK_STARTED,
                details={"document_bytes": len(document_bytes)},
            )
        )

        try:
            package = await anyio.to_thread.run_sync(
                partial(
                    open_package,
                    document_bytes,
                    max_part_bytes=self._max_part_bytes,
                )
            )

            with package:
                await _emit(
                    emitter,
                    SignatureCheckEvent(
                        check_id=check_id,
                        event_type=SignatureCheckEventType.PACKAGE_OPENED,
                    )
                )
                lines, extraction = await self._extract(
                    package, check_id=check_id, emitter=emitter
                )

            correlation = correlate(lines, extraction, self._policy)

            await _emit(
                emitter,
                SignatureCheckEvent(
                    check_id=check_id,
                    event_type=SignatureCheckEventType.CORRELATION_COMPLETED,
                    details={
                        "policy": self._policy.name,
                        "signed_lines": sum(
                            1 for s in correlation.statuses if s.signed
                        ),
                        "unsigned_lines": sum(
                            1 for s in correlation.statuses if not s.signed
                        ),
                    },
                )
            )

            report = _assemble_report(extraction, correlation)

            await _emit(
                emitter,
                SignatureCheckEvent(
                    check_id=check_id,
                    event_type=SignatureCheckEventType.CHECK_COMPLETED,
                    details={
                        "is_digitally_signed": report.is_digitally_signed,
                        "signature_count": report.signature_count,
                    },
                )
            )
            return report

        except Exception as exc:
            await _emit(
                emitter,
                SignatureCheckEvent(
                    check_id=check_id,
                    event_type=SignatureCheckEventType.CHECK_FAILED,
                    details={
                        "error": str(exc),
                        "exception_type": type(exc).__name__,
                    },
                )
            )
            raise

    # ------------------------------------------------------------------
    # Extraction (independent, run concurrently)
    # ------------------------------------------------------------------

    async def _extract(
        self,
        package: OpcPackage,
        *,
        check_id: str,
        emitter: SignatureCheckEventEmitter,
    ) -> tuple[List[SignatureLine], SignerIdentityExtraction]:
        results: Dict[str, Any] = {}

        async def lines_task() -> None:
            lines = await anyio.to_thread.run_sync(_read_signature_lines, package)
            results["lines"] = lines
            await _emit(
                emitter,
                SignatureCheckEvent(
                    check_id=check_id,
                    event_type=SignatureCheckEventType.SIGNATURE_LINES_EXTRACTED,
                    details={"signature_lines": len(lines)},
                )
            )

        async def identities_task() -> None:
            extraction = await anyio.to_thread.run_sync(
                _read_signer_identities, package, self._tolerate_malformed_parts
            )
            results["extraction"] = extraction
            await _emit(
                emitter,
                SignatureCheckEvent(
                    check_id=check_id,
                    event_type=SignatureCheckEventType.SIGNER_IDENTITIES_EXTRACTED,
                    details={
                        "is_digitally_signed": extraction.is_digitally_signed,
                        "signature_count": extraction.signature_count,
                    },
                )
            )

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(lines_task)
                tg.start_soon(identities_task)
        except BaseExceptionGroup as group:
            # Surface the processing failure itself, not the task group wrapper.
            failures = group.subgroup(DocumentProcessingError)
            if failures is not None:
                raise _first_leaf(failures) from None
            raise

        return results["lines"], results["extraction"]


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc
