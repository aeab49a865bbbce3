"""
Signature correlation schemas.

Request-scoped, immutable models describing:
- declared signature lines found in the document body,
- signer identity strings recovered from attached signature parts,
- the per-line correlation outcome,
- the aggregate report returned to callers.

Nothing here is persisted. All instances are created fresh per request
and discarded when the request completes.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


UNKNOWN_SIGNER = "Unknown"


# ---------------------------------------------------------------------------
# Extraction results (INTERNAL CONTRACTS)
# ---------------------------------------------------------------------------

class SignatureLine(BaseModel):
    """One declared signature placeholder in the document body."""

    suggested_signer: str = Field(
        UNKNOWN_SIGNER,
        description="Display name the author intended to sign",
    )

    suggested_signer_email: str = Field(
        UNKNOWN_SIGNER,
        description="Email the author attached to the signature line",
    )

    order: int = Field(
        ...,
        ge=0,
        description="Position among signature lines in document order",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class SignerIdentityRecord(BaseModel):
    """
    One identity string recovered from an attached signature's certificate
    metadata (conventionally the X509 issuer name).

    Used for textual matching only. It carries no cryptographic trust.
    """

    raw_identity: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class SignerIdentityExtraction(BaseModel):
    """Aggregate output of a single pass over the signature origin parts."""

    is_digitally_signed: bool = Field(
        ...,
        description="True when the signature origin container is present",
    )

    records: tuple[SignerIdentityRecord, ...] = ()

    signature_count: int = Field(0, ge=0)

    @model_validator(mode="after")
    def enforce_invariants(self) -> "SignerIdentityExtraction":
        if self.signature_count != len(self.records):
            raise ValueError("signature_count must equal the number of records")
        if not self.is_digitally_signed and self.records:
            raise ValueError(
                "identity records require a signature origin container"
            )
        return self

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Public results (wire contracts, camelCase)
# ---------------------------------------------------------------------------

class SignatureStatus(BaseModel):
    """Correlation result for one signature line."""

    suggested_signer: str
    email: str
    signed: bool

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DocumentSignatureReport(BaseModel):
    """
    Request-scoped aggregate.

    Derived entirely from extraction and correlation; never mutated.
    """

    is_digitally_signed: bool

    signature_count: int = Field(0, ge=0)

    signatures: List[SignatureStatus] = Field(default_factory=list)

    first_unsigned_signer: Optional[SignatureStatus] = None

    @model_validator(mode="after")
    def enforce_invariants(self) -> "DocumentSignatureReport":
        if not self.is_digitally_signed:
            if any(s.signed for s in self.signatures):
                raise ValueError(
                    "Invariant violation: signed line without a signature "
                    "origin container"
                )
        expected = next((s for s in self.signatures if not s.signed), None)
        if self.first_unsigned_signer != expected:
            raise ValueError(
                "Invariant violation: first_unsigned_signer does not match "
                "the first unsigned entry in document order"
            )
        return self

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )
