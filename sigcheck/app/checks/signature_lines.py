"""
Signature line extraction from the main document body.

Signature lines are VML shapes carrying an <o:signatureline> child in the
Office drawing namespace. Each one declares the suggested signer and their
email; either attribute may be missing, in which case the literal
"Unknown" is substituted. Absence is a fallback policy, not an error.
"""

from __future__ import annotations

from typing import Iterator, Optional

from lxml import etree

from sigcheck.app.schemas.signatures import UNKNOWN_SIGNER, SignatureLine


OFFICE_NS = "urn:schemas-microsoft-com:office:office"

SIGNATURE_LINE_TAG = f"{{{OFFICE_NS}}}signatureline"
SUGGESTED_SIGNER_ATTR = f"{{{OFFICE_NS}}}suggestedsigner"
SUGGESTED_SIGNER_EMAIL_ATTR = f"{{{OFFICE_NS}}}suggestedsigneremail"


def attribute_or_unknown(element: etree._Element, name: str) -> str:
    """Attribute value, or "Unknown" when absent or blank."""
    value: Optional[str] = element.get(name)
    if value is None or not value.strip():
        return UNKNOWN_SIGNER
    return value


def extract_signature_lines(body_root: etree._Element) -> Iterator[SignatureLine]:
    """
    Yield every declared signature line in document order.

    The generator is lazy and can be restarted by calling again with the
    same tree.
    """
    for order, element in enumerate(body_root.iter(SIGNATURE_LINE_TAG)):
        yield SignatureLine(
            suggested_signer=attribute_or_unknown(element, SUGGESTED_SIGNER_ATTR),
            suggested_signer_email=attribute_or_unknown(
                element, SUGGESTED_SIGNER_EMAIL_ATTR
            ),
            order=order,
        )
