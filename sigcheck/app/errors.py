"""
Failure taxonomy for the signature check service.

Every parsing failure surfaces at the façade boundary as a
DocumentProcessingError (or subclass). No partial reports are produced:
either a complete report is returned or one of these is raised.

Attribute absence on a signature line is NOT an error and has no
exception type here.
"""

from __future__ import annotations

from typing import Optional


class DocumentProcessingError(RuntimeError):
    """Single processing-failure signal exposed to the transport layer."""


class InvalidDocumentPayloadError(DocumentProcessingError):
    """The inbound payload could not be decoded into document bytes."""


class MalformedPackageError(DocumentProcessingError):
    """
    The bytes are not a valid OPC archive, or the main document part is
    missing or unparseable.
    """


class MalformedSignaturePartError(DocumentProcessingError):
    """A digital signature part related from the origin part failed to parse."""

    def __init__(self, message: str, *, part_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.part_name = part_name
