"""
Signer identity extraction from attached digital signature parts.

Every element whose local name is X509IssuerName (namespace ignored) in
any signature part contributes one SignerIdentityRecord. The number of
records is the document's signature count.

These strings are used for textual correlation only. No certificate,
hash, timestamp or revocation check is performed here.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from lxml import etree

from sigcheck.app.errors import MalformedSignaturePartError
from sigcheck.app.package.opc_reader import PackagePart, parse_xml
from sigcheck.app.schemas.signatures import (
    SignerIdentityExtraction,
    SignerIdentityRecord,
)

logger = logging.getLogger(__name__)


IDENTITY_LOCAL_NAME = "X509IssuerName"


def _identities_in_part(root: etree._Element) -> List[SignerIdentityRecord]:
    records: List[SignerIdentityRecord] = []

    for element in root.iter(etree.Element):
        if etree.QName(element).localname != IDENTITY_LOCAL_NAME:
            continue
        records.append(
            SignerIdentityRecord(raw_identity="".join(element.itertext()))
        )
    return records


def extract_signer_identities(
    origin_parts: Optional[Sequence[PackagePart]],
    *,
    tolerate_malformed_parts: bool = False,
) -> SignerIdentityExtraction:
    """
    Collect signer identities and their count in one pass.

    origin_parts is None when the package has no signature origin
    container. An empty sequence means the container is present but holds
    no signatures; the document still counts as digitally signed.

    A part that fails to parse raises MalformedSignaturePartError unless
    tolerate_malformed_parts is set, in which case it contributes nothing.
    """
    if origin_parts is None:
        return SignerIdentityExtraction(is_digitally_signed=False)

    records: List[SignerIdentityRecord] = []

    for part in origin_parts:
        try:
            root = parse_xml(part.blob)
        except etree.XMLSyntaxError as exc:
            if not tolerate_malformed_parts:
                raise MalformedSignaturePartError(
                    f"Signature part /{part.name} is not well-formed XML: {exc}",
                    part_name=part.name,
                ) from exc

            logger.warning(
                "signature_part_skipped",
                extra={"part_name": part.name, "error_type": type(exc).__name__},
            )
            continue

        part_records = _identities_in_part(root)
        logger.debug(
            "signer_identities_found",
            extra={
                "part_name": part.name,
                "identities": [r.raw_identity for r in part_records],
            },
        )
        records.extend(part_records)

    return SignerIdentityExtraction(
        is_digitally_signed=True,
        records=tuple(records),
        signature_count=len(records),
    )
