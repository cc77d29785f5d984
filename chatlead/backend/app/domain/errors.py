# app/domain/errors.py
from __future__ import annotations


class PipelineError(Exception):
    """Base class for conversation pipeline failures."""


class ScanError(PipelineError):
    """Session store scan failed before any key was touched. Aborts the run."""


# -----------------------------
# Per-key: non-fatal skips
# -----------------------------
class KeySkipped(PipelineError):
    reason: str = "skipped"

    def __init__(self, key: str, reason: str | None = None) -> None:
        self.key = key
        if reason is not None:
            self.reason = reason
        super().__init__(f"{key} ({self.reason})")


class IneligibleTTL(KeySkipped):
    def __init__(self, key: str, ttl: int) -> None:
        self.ttl = ttl
        super().__init__(key, f"TTL: {ttl}")


class EmptyConversation(KeySkipped):
    reason = "no messages"


class DuplicateConversation(KeySkipped):
    reason = "duplicate conversation"


class KeyLocked(KeySkipped):
    reason = "locked by another run"


# -----------------------------
# Per-key: non-fatal errors
# -----------------------------
class PerKeyError(PipelineError):
    pass


class AnalysisError(PerKeyError):
    """Both analysis providers failed."""

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


AnalysisFailure = AnalysisError


class PersistenceFailure(PerKeyError):
    pass


class FanOutFailure(PipelineError):
    """A sync adapter or webhook call failed. Logged, never surfaced per key."""
