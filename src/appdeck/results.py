"""Result objects returned across the CLI boundary."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a lifecycle or checkout operation.

    ``success`` is False only for results built by callers that chose to
    report instead of raise; the core raises an AppDeckError on failure.
    """

    success: bool
    message: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        return data
