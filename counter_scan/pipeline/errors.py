# pipeline/errors.py
from __future__ import annotations

from typing import Any


class ScanError(Exception):
    """Base class for every error raised by the scan engine."""

    def __init__(self, message: str, code: str = "SCAN_ERROR", details: dict[str, Any] | None = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class RecognitionUnavailable(ScanError):
    """The recognition adapter never became ready. Fatal for the session."""

    def __init__(self, reason: str, session: Any = None):
        self.session = session
        super().__init__(
            message=f"recognition engine unavailable: {reason}",
            code="RECOGNITION_UNAVAILABLE",
            details={"reason": reason},
        )


class TransientRecognitionError(ScanError):
    """A single recognize() call failed. The loop backs off and retries."""

    def __init__(self, region_name: str, frame_seq: int, reason: str):
        self.region_name = region_name
        self.frame_seq = frame_seq
        super().__init__(
            message=f"recognition failed for region {region_name!r} (frame {frame_seq}): {reason}",
            code="TRANSIENT_RECOGNITION_ERROR",
            details={"region": region_name, "frame_seq": frame_seq, "reason": reason},
        )


class ScanContractError(ScanError, ValueError):
    """Caller broke a contract: bad region, bad option, unknown preset."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="SCAN_CONTRACT_ERROR", details=details)


class CodeFormatError(ScanError, ValueError):
    """A decoded code payload does not follow the machine-code format."""

    def __init__(self, data: str, reason: str):
        self.data = data
        super().__init__(
            message=reason,
            code="CODE_FORMAT_ERROR",
            details={"data": data},
        )
