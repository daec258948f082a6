from counter_scan.pipeline.models import (
    CodePayload,
    FinalReading,
    RecognitionSample,
    ResultKind,
    ScanResult,
)
from counter_scan.pipeline.utils import describe_result


def test_describe_machine_code():
    lines = describe_result(ScanResult(ResultKind.CODE, code=CodePayload("Peacock, changer 2, 100 = $7")))
    assert lines[0] == "Code: Peacock, changer 2, 100 = $7"
    assert "PEACOCK_CH2_HA" in lines[1]
    assert lines[2].strip() == "Peacock, Changer 2, Counter: 100, Amount: $7"


def test_describe_foreign_code():
    lines = describe_result(ScanResult(ResultKind.CODE, code=CodePayload("https://example.com")))
    assert len(lines) == 2
    assert "not a machine code" in lines[1]


def test_describe_reading():
    evidence = tuple(RecognitionSample("primary", i, "963373", 80.0) for i in range(12))
    reading = FinalReading(value=963373, confidence=80.0, occurrences=12, evidence=evidence)
    lines = describe_result(ScanResult(ResultKind.READING, reading=reading))

    assert lines[0].startswith("Reading: 963373")
    assert len(lines) == 11


def test_describe_other_outcomes():
    assert describe_result(ScanResult(ResultKind.NO_READING, detail="timeout")) == ["No stable reading: timeout"]
    assert describe_result(ScanResult(ResultKind.CANCELLED)) == ["Scan cancelled."]
    assert describe_result(ScanResult(ResultKind.ERROR, detail="boom")) == ["Scan failed: boom"]
