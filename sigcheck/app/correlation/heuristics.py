"""
Signer matching policies.

NameContainmentHeuristic is NOT identity verification. It decides that a
signature line is satisfied when the suggested signer's free-text name
appears, case-insensitively, inside an identity string recovered from a
signature part (typically an X509 issuer name such as
"CN=Jane Doe, O=Acme").

Case is compared character by character with str.lower(); no Unicode
case folding, so "Straße" does not match "STRASSE".

Known quirk: the "Unknown" fallback name is matched literally, so an
identity containing "unknown" satisfies a line with no suggested signer.

Replacing this with real certificate validation means supplying another
SignerMatchPolicy to the correlator.
"""

from __future__ import annotations

from typing import Protocol


class SignerMatchPolicy(Protocol):
    """Decides whether one identity string satisfies one suggested signer."""

    name: str

    def matches(self, suggested_signer: str, raw_identity: str) -> bool:
        ...


class NameContainmentHeuristic:
    """Case-insensitive substring containment of the suggested signer name."""

    name = "name_containment"

    def matches(self, suggested_signer: str, raw_identity: str) -> bool:
        return suggested_signer.lower() in raw_identity.lower()
