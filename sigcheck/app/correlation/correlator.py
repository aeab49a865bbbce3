"""
Signature correlator.

A pure join between the declared signature lines and the signer identities
recovered from the signature parts. Document order of the lines is
authoritative: no reordering is ever performed.

A line is signed iff the document carries a signature origin container
AND at least one identity record satisfies the matching policy for the
line's suggested signer.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from sigcheck.app.correlation.heuristics import (
    NameContainmentHeuristic,
    SignerMatchPolicy,
)
from sigcheck.app.schemas.signatures import (
    SignatureLine,
    SignatureStatus,
    SignerIdentityExtraction,
)


class CorrelationResult(BaseModel):
    statuses: List[SignatureStatus]
    first_unsigned: Optional[SignatureStatus] = None

    model_config = ConfigDict(frozen=True)


def is_line_signed(
    line: SignatureLine,
    extraction: SignerIdentityExtraction,
    policy: SignerMatchPolicy,
) -> bool:
    if not extraction.is_digitally_signed:
        return False

    return any(
        policy.matches(line.suggested_signer, record.raw_identity)
        for record in extraction.records
    )


def correlate(
    lines: Iterable[SignatureLine],
    extraction: SignerIdentityExtraction,
    policy: Optional[SignerMatchPolicy] = None,
) -> CorrelationResult:
    """
    Produce the ordered status list and the first unsigned entry.

    With no signature lines the list is empty and first_unsigned is None.
    """
    policy = policy or NameContainmentHeuristic()

    statuses = [
        SignatureStatus(
            suggested_signer=line.suggested_signer,
            email=line.suggested_signer_email,
            signed=is_line_signed(line, extraction, policy),
        )
        for line in sorted(lines, key=lambda line: line.order)
    ]

    first_unsigned = next((s for s in statuses if not s.signed), None)

    return CorrelationResult(statuses=statuses, first_unsigned=first_unsigned)
