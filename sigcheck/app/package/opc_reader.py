"""
Open Packaging Conventions (OPC) reader.

Opens a word-processing package (zip archive of XML parts), resolves its
relationships, and exposes the two structures the signature check needs:

- the main document body (target of the officeDocument relationship)
- the digital signature origin container and the signature parts it
  relates to

This module is container plumbing only. It does not interpret document
content and does not validate signatures.

Error handling policy:
    Only the specific exceptions raised for malformed input are caught
    (see ZIP_ENTRY_ERRORS and lxml XMLSyntaxError). They are re-raised
    as MalformedPackageError / MalformedSignaturePartError.
    Anything else is a bug in this code and propagates unchanged.
"""

from __future__ import annotations

import io
import logging
import posixpath
import threading
import zipfile
import zlib
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import unquote

from lxml import etree

from sigcheck.app.errors import MalformedPackageError, MalformedSignaturePartError

logger = logging.getLogger(__name__)


PACKAGE_RELS_PART = "_rels/.rels"

RELATIONSHIPS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"

OFFICE_DOCUMENT_RELTYPES = frozenset(
    {
        "http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument",
        "http://purl.oclc.org/ooxml/officeDocument/relationships/officeDocument",
    }
)

DIGITAL_SIGNATURE_ORIGIN_RELTYPE = (
    "http://schemas.openxmlformats.org/package/2006/relationships/"
    "digital-signature/origin"
)

DEFAULT_MAX_PART_BYTES = 25 * 1024 * 1024

# zipfile raises NotImplementedError for unsupported compression methods and
# RuntimeError for entries flagged as encrypted.
ZIP_ENTRY_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
)

ZIP_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    EOFError,
    ValueError,
    OSError,
)


# ---------------------------------------------------------------------------
# XML parsing
# ---------------------------------------------------------------------------

def make_xml_parser() -> etree.XMLParser:
    """
    Hardened, strict lxml parser.

    A fresh parser is built per call: lxml parser instances must not be
    shared between threads.
    """
    return etree.XMLParser(
        resolve_entities=False,
        load_dtd=False,
        dtd_validation=False,
        no_network=True,
        recover=False,
        huge_tree=False,
    )


def parse_xml(blob: bytes) -> etree._Element:
    """Parse a part blob into its root element. Raises etree.XMLSyntaxError."""
    return etree.fromstring(blob, parser=make_xml_parser())


# ---------------------------------------------------------------------------
# Part naming
# ---------------------------------------------------------------------------

def rels_part_for(part_name: str) -> str:
    """
    Relationship part name for a source part.

    'word/document.xml' -> 'word/_rels/document.xml.rels'
    ''                  -> '_rels/.rels'
    """
    if not part_name:
        return PACKAGE_RELS_PART
    directory, base = posixpath.split(part_name)
    return posixpath.join(directory, "_rels", base + ".rels")


def resolve_target(source_part: str, target: str) -> str:
    """
    Resolve an internal relationship target to a package part name.

    Targets are relative to the source part's directory; a leading '/'
    makes them package-root-relative. Targets escaping the package are
    rejected.
    """
    target = unquote(target.strip())
    if not target or "\\" in target:
        raise MalformedPackageError(f"Invalid relationship target: {target!r}")

    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source_part), target)

    normalized = posixpath.normpath(joined)
    if normalized in {"", "."} or normalized.startswith("../") or normalized == "..":
        raise MalformedPackageError(
            f"Relationship target escapes the package: {target!r}"
        )
    return normalized


# ---------------------------------------------------------------------------
# Package model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Relationship:
    r_id: str
    r_type: str
    target: str
    external: bool


@dataclass(frozen=True)
class PackagePart:
    """A raw, unparsed package part."""

    name: str
    blob: bytes


class OpcPackage:
    """
    Read-only view over an opened OPC archive.

    Instances are request-scoped. Reads are serialized internally so the
    body and signature extractors may run on separate threads.
    """

    def __init__(
        self,
        archive: zipfile.ZipFile,
        *,
        max_part_bytes: int = DEFAULT_MAX_PART_BYTES,
    ) -> None:
        self._archive = archive
        self._max_part_bytes = max_part_bytes
        self._lock = threading.Lock()

        # OPC part names are case-insensitive; zip entry names are not.
        self._entries: Dict[str, zipfile.ZipInfo] = {
            info.filename.lower(): info
            for info in archive.infolist()
            if not info.is_dir()
        }

    # ------------------------------------------------------------------
    # Context management
    # ------------------------------------------------------------------

    def __enter__(self) -> "OpcPackage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._archive.close()

    # ------------------------------------------------------------------
    # Low-level access
    # ------------------------------------------------------------------

    def has_part(self, part_name: str) -> bool:
        return part_name.lower() in self._entries

    def read_part(self, part_name: str) -> bytes:
        """
        Read a part's bytes with a hard size limit.

        Raises KeyError if the part does not exist and MalformedPackageError
        if it is oversized or its zip entry is corrupt.
        """
        info = self._entries[part_name.lower()]

        if info.file_size > self._max_part_bytes:
            raise MalformedPackageError(
                f"Part /{part_name} exceeds the {self._max_part_bytes} byte limit"
            )

        try:
            with self._lock, self._archive.open(info, "r") as fp:
                data = fp.read(self._max_part_bytes + 1)
        except ZIP_ENTRY_ERRORS as exc:
            raise MalformedPackageError(
                f"Corrupt zip entry for part /{part_name}: {exc}"
            ) from exc

        if len(data) > self._max_part_bytes:
            raise MalformedPackageError(
                f"Part /{part_name} exceeds the {self._max_part_bytes} byte limit"
            )
        return data

    def relationships(self, source_part: str = "") -> List[Relationship]:
        """
        Relationships declared by a source part ('' for the package).

        A source part without a relationships part has no relationships.
        """
        rels_part = rels_part_for(source_part)
        if not self.has_part(rels_part):
            return []

        try:
            root = parse_xml(self.read_part(rels_part))
        except etree.XMLSyntaxError as exc:
            raise MalformedPackageError(
                f"Relationships part /{rels_part} is not well-formed XML: {exc}"
            ) from exc

        relationships: List[Relationship] = []
        for elem in root.iter(f"{{{RELATIONSHIPS_NS}}}Relationship"):
            r_type = (elem.get("Type") or "").strip()
            target = elem.get("Target") or ""
            external = (elem.get("TargetMode") or "").strip() == "External"

            relationships.append(
                Relationship(
                    r_id=elem.get("Id") or "",
                    r_type=r_type,
                    target=target if external else resolve_target(source_part, target),
                    external=external,
                )
            )
        return relationships

    def _internal_relationships_of_type(
        self, source_part: str, r_types: frozenset[str] | set[str]
    ) -> List[Relationship]:
        return [
            rel
            for rel in self.relationships(source_part)
            if not rel.external and rel.r_type in r_types
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def main_body_part_name(self) -> str:
        office_rels = self._internal_relationships_of_type(
            "", OFFICE_DOCUMENT_RELTYPES
        )
        if not office_rels:
            raise MalformedPackageError(
                "Package has no officeDocument relationship"
            )

        part_name = office_rels[0].target
        if not self.has_part(part_name):
            raise MalformedPackageError(
                f"Main document part /{part_name} is missing from the archive"
            )
        return part_name

    def main_body_xml(self) -> etree._Element:
        """Parsed root element of the main document part."""
        part_name = self.main_body_part_name()

        try:
            return parse_xml(self.read_part(part_name))
        except etree.XMLSyntaxError as exc:
            raise MalformedPackageError(
                f"Main document part /{part_name} is not well-formed XML: {exc}"
            ) from exc

    def digital_signature_origin_part_name(self) -> Optional[str]:
        origin_rels = self._internal_relationships_of_type(
            "", {DIGITAL_SIGNATURE_ORIGIN_RELTYPE}
        )
        if not origin_rels:
            return None

        part_name = origin_rels[0].target
        if not self.has_part(part_name):
            raise MalformedPackageError(
                f"Digital signature origin part /{part_name} is missing "
                "from the archive"
            )
        return part_name

    def digital_signature_origin_parts(self) -> Optional[List[PackagePart]]:
        """
        Raw signature parts related from the signature origin part.

        Returns None when the package has no origin container, and a
        (possibly empty) list otherwise, in relationship order.
        """
        origin = self.digital_signature_origin_part_name()
        if origin is None:
            return None

        parts: List[PackagePart] = []
        seen: set[str] = set()

        for rel in self.relationships(origin):
            if rel.external or rel.target.lower() in seen:
                continue
            seen.add(rel.target.lower())

            try:
                blob = self.read_part(rel.target)
            except KeyError as exc:
                raise MalformedSignaturePartError(
                    f"Signature part /{rel.target} is missing from the archive",
                    part_name=rel.target,
                ) from exc

            parts.append(PackagePart(name=rel.target, blob=blob))

        logger.debug(
            "signature_origin_resolved",
            extra={"origin_part": origin, "signature_parts": len(parts)},
        )
        return parts


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def open_package(
    document_bytes: bytes,
    *,
    max_part_bytes: int = DEFAULT_MAX_PART_BYTES,
) -> OpcPackage:
    """
    Open an OPC package from raw bytes.

    Raises MalformedPackageError if the bytes are not a zip archive or the
    package relationships part is missing.
    """
    if not document_bytes:
        raise MalformedPackageError("Document payload is empty")

    try:
        archive = zipfile.ZipFile(io.BytesIO(document_bytes))
    except ZIP_ARCHIVE_ERRORS as exc:
        raise MalformedPackageError(
            f"Document is not a valid OPC zip archive: {exc}"
        ) from exc

    package = OpcPackage(archive, max_part_bytes=max_part_bytes)

    if not package.has_part(PACKAGE_RELS_PART):
        package.close()
        raise MalformedPackageError(
            "Package relationships part /_rels/.rels is missing"
        )

    return package
