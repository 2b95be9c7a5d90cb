"""Exception hierarchy for the MRV verifier core.

Every error is raised synchronously to the immediate caller and carries
the offending field and value so the failure can be reproduced in a test.
"""

from __future__ import annotations

from typing import Any


class MRVError(Exception):
    """Base class for all verifier-core errors."""


class InvalidInputError(MRVError, ValueError):
    """A numeric input to the emissions calculator is malformed or out of range."""

    def __init__(self, field: str, value: Any, constraint: str) -> None:
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(f"Invalid {field}={value!r}: must be {constraint}")


class ModelNotTrainedError(MRVError, RuntimeError):
    def __init__(self, message: str = "Anomaly scorer has not been trained. Call train() first.") -> None:
        super().__init__(message)


class InsufficientTrainingDataError(MRVError, ValueError):
    def __init__(self, required: int, actual: int) -> None:
        self.required = required
        self.actual = actual
        super().__init__(
            f"Need at least {required} training readings, got {actual}"
        )


class SerializationError(MRVError, ValueError):
    """A non-finite value reached the canonical serializer."""

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Cannot serialize {field}={value!r}: value must be finite")


class AttestationIntegrityError(MRVError):
    """An attestation's content no longer matches its content hash."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Attestation content hash mismatch: recorded {expected}, recomputed {actual}"
        )
