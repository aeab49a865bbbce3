import inspect
from typing import List

import pytest

from sigcheck.app.config import Settings
from sigcheck.app.coordinator.coordinator import (
    SignatureCheckCoordinator,
    build_signature_report,
    check_all_signatures,
    check_first_unsigned_signer,
)
from sigcheck.app.errors import (
    DocumentProcessingError,
    MalformedPackageError,
    MalformedSignaturePartError,
)
from sigcheck.app.events import SignatureCheckEvent, SignatureCheckEventType
from sigcheck.tests.fixtures.docx_factory import (
    build_docx,
    patch_zip_entry,
    signed_docx,
    unsigned_docx,
)


class FailingEmitter:
    async def emit(self, event: SignatureCheckEvent) -> None:
        raise ConnectionError("event sink unavailable")


class RecordingEmitter:
    def __init__(self) -> None:
        self.events: List[SignatureCheckEvent] = []

    async def emit(self, event: SignatureCheckEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[SignatureCheckEventType]:
        return [e.event_type for e in self.events]


PARTIALLY_SIGNED = [
    ("Alice", "alice@example.com"),
    ("Bob", "bob@example.com"),
]


# ---------------------------------------------------------------------------
# Façade
# ---------------------------------------------------------------------------

def test_unsigned_document_reports_first_line():
    status = check_first_unsigned_signer(unsigned_docx("Jane Doe"))

    assert status.suggested_signer == "Jane Doe"
    assert status.email == "Unknown"
    assert status.signed is False


def test_unsigned_document_lists_every_line():
    report = check_all_signatures(unsigned_docx("Alice", "Bob"))

    assert report.is_digitally_signed is False
    assert report.signature_count == 0
    assert [(s.suggested_signer, s.signed) for s in report.signatures] == [
        ("Alice", False),
        ("Bob", False),
    ]


def test_partially_signed_document():
    document = signed_docx(PARTIALLY_SIGNED, "CN=Alice, O=Acme")

    report = build_signature_report(document)

    assert report.is_digitally_signed is True
    assert report.signature_count == 1
    assert [s.signed for s in report.signatures] == [True, False]
    assert report.first_unsigned_signer.suggested_signer == "Bob"
    assert report.first_unsigned_signer.email == "bob@example.com"


def test_fully_signed_document_has_no_next_signer():
    document = signed_docx(PARTIALLY_SIGNED, "CN=Alice", "CN=Bob")

    assert check_first_unsigned_signer(document) is None
    assert check_all_signatures(document).signature_count == 2


def test_signatures_without_lines():
    report = build_signature_report(build_docx([], [["CN=Alice"]]))

    assert report.is_digitally_signed is True
    assert report.signature_count == 1
    assert report.signatures == []
    assert report.first_unsigned_signer is None


def test_document_without_lines_or_signatures():
    report = build_signature_report(build_docx())

    assert report.is_digitally_signed is False
    assert report.signatures == []
    assert report.first_unsigned_signer is None


def test_report_is_deterministic():
    document = signed_docx(PARTIALLY_SIGNED, "CN=Bob")

    assert build_signature_report(document) == build_signature_report(document)


def test_invalid_package_raises_processing_error():
    with pytest.raises(DocumentProcessingError):
        build_signature_report(b"definitely not a zip")


def test_malformed_signature_part_fails_whole_report():
    document = build_docx(PARTIALLY_SIGNED, [["CN=Alice"], b"<broken"])

    with pytest.raises(MalformedSignaturePartError):
        build_signature_report(document)


def test_malformed_signature_part_tolerated_on_request():
    document = build_docx(PARTIALLY_SIGNED, [["CN=Alice"], b"<broken"])

    report = build_signature_report(
        document, tolerate_malformed_signature_parts=True
    )

    assert report.signature_count == 1
    assert report.first_unsigned_signer.suggested_signer == "Bob"


def test_query_options_are_explicit_keywords():
    for query in (check_first_unsigned_signer, check_all_signatures):
        parameters = inspect.signature(query).parameters
        assert {
            "max_part_bytes",
            "tolerate_malformed_signature_parts",
            "policy",
        } <= set(parameters)
        assert parameters["policy"].kind is inspect.Parameter.KEYWORD_ONLY

    with pytest.raises(TypeError):
        check_all_signatures(unsigned_docx("Alice"), tolerate_malformed=True)


def test_first_unsigned_signer_accepts_tolerance_option():
    document = build_docx(PARTIALLY_SIGNED, [["CN=Alice"], b"<broken"])

    status = check_first_unsigned_signer(
        document, tolerate_malformed_signature_parts=True
    )

    assert status.suggested_signer == "Bob"


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

@pytest.mark.anyio
async def test_run_check_emits_ordered_events():
    emitter = RecordingEmitter()
    coordinator = SignatureCheckCoordinator()

    report = await coordinator.run_check(
        document_bytes=signed_docx(PARTIALLY_SIGNED, "CN=Alice"),
        check_id="check-001",
        emitter=emitter,
    )

    assert report.first_unsigned_signer.suggested_signer == "Bob"

    assert emitter.types[0] is SignatureCheckEventType.CHECK_STARTED
    assert emitter.types[1] is SignatureCheckEventType.PACKAGE_OPENED
    assert set(emitter.types[2:4]) == {
        SignatureCheckEventType.SIGNATURE_LINES_EXTRACTED,
        SignatureCheckEventType.SIGNER_IDENTITIES_EXTRACTED,
    }
    assert emitter.types[4:] == [
        SignatureCheckEventType.CORRELATION_COMPLETED,
        SignatureCheckEventType.CHECK_COMPLETED,
    ]
    assert {e.check_id for e in emitter.events} == {"check-001"}


@pytest.mark.anyio
async def test_run_check_matches_facade():
    document = signed_docx(PARTIALLY_SIGNED, "CN=Bob")

    report = await SignatureCheckCoordinator().run_check(
        document_bytes=document, check_id="check-002"
    )

    assert report == build_signature_report(document)


@pytest.mark.anyio
async def test_run_check_invalid_package_emits_failure():
    emitter = RecordingEmitter()

    with pytest.raises(MalformedPackageError):
        await SignatureCheckCoordinator().run_check(
            document_bytes=b"not a zip",
            check_id="check-003",
            emitter=emitter,
        )

    assert emitter.types == [
        SignatureCheckEventType.CHECK_STARTED,
        SignatureCheckEventType.CHECK_FAILED,
    ]
    assert emitter.events[-1].details["exception_type"] == "MalformedPackageError"


@pytest.mark.anyio
async def test_run_check_surfaces_signature_part_error_unwrapped():
    emitter = RecordingEmitter()
    document = build_docx(PARTIALLY_SIGNED, [b"<broken"])

    with pytest.raises(MalformedSignaturePartError) as exc_info:
        await SignatureCheckCoordinator().run_check(
            document_bytes=document,
            check_id="check-004",
            emitter=emitter,
        )

    assert exc_info.value.part_name == "_xmlsignatures/sig1.xml"
    assert emitter.types[-1] is SignatureCheckEventType.CHECK_FAILED
    assert SignatureCheckEventType.CHECK_COMPLETED not in emitter.types


@pytest.mark.anyio
async def test_coordinator_honours_tolerance_setting():
    settings = Settings(tolerate_malformed_signature_parts=True)
    coordinator = SignatureCheckCoordinator.from_settings(settings)

    report = await coordinator.run_check(
        document_bytes=build_docx(PARTIALLY_SIGNED, [b"<broken", ["CN=Bob"]]),
        check_id="check-005",
    )

    assert report.signature_count == 1
    assert [s.signed for s in report.signatures] == [False, True]


@pytest.mark.anyio
async def test_unreadable_signature_entry_surfaces_unwrapped():
    document = patch_zip_entry(
        signed_docx(PARTIALLY_SIGNED, "CN=Alice"),
        "_xmlsignatures/sig1.xml",
        compress_type=99,
    )

    with pytest.raises(MalformedPackageError):
        await SignatureCheckCoordinator().run_check(
            document_bytes=document, check_id="check-006"
        )


@pytest.mark.anyio
async def test_failing_emitter_does_not_fail_the_check(caplog):
    document = signed_docx(PARTIALLY_SIGNED, "CN=Alice")

    with caplog.at_level("WARNING"):
        report = await SignatureCheckCoordinator().run_check(
            document_bytes=document,
            check_id="check-007",
            emitter=FailingEmitter(),
        )

    assert report == build_signature_report(document)
    assert any(r.message == "event_emission_failed" for r in caplog.records)


@pytest.mark.anyio
async def test_failing_emitter_keeps_the_original_failure():
    with pytest.raises(MalformedPackageError):
        await SignatureCheckCoordinator().run_check(
            document_bytes=b"not a zip",
            check_id="check-008",
            emitter=FailingEmitter(),
        )
