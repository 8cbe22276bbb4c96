"""Result type returned by every engine operation."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class OperationResult:
    """Outcome of an engine operation.

    data carries a "type" key (condition, encounter, action, turn, stats)
    plus the operation's payload. display is Markdown for a human reader.
    """

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    display: str = ""
    suggestions: list[str] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def ok(
        cls,
        data: dict[str, Any],
        display: str,
        suggestions: list[str] | None = None,
    ) -> "OperationResult":
        return cls(success=True, data=data, display=display, suggestions=suggestions or [])

    @classmethod
    def fail(
        cls,
        error: str,
        data: dict[str, Any] | None = None,
        display: str | None = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            data=data or {},
            display=display if display is not None else f"## ❌ Error\n\n{error}",
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "data": self.data,
            "display": self.display,
        }
        if self.suggestions:
            result["suggestions"] = list(self.suggestions)
        if self.error:
            result["error"] = self.error
        return result
