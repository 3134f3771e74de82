from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from .resolver import CompletionEvent

FailureKind = Literal[
    "action_locked",
    "insufficient_resources",
    "capacity_exceeded",
    "stunned",
    "unknown_content",
]


class InvalidGrant(ValueError):
    """Raised for XP or progress grants that are negative or not finite."""


@dataclass(frozen=True, slots=True)
class Failure:
    kind: FailureKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def locked(cls, message: str, **details: Any) -> "Failure":
        return cls("action_locked", message, details)

    @classmethod
    def insufficient(cls, missing: dict[str, int], message: str | None = None) -> "Failure":
        summary = ", ".join(f"{key}x{qty}" for key, qty in sorted(missing.items()))
        return cls("insufficient_resources", message or f"Missing {summary}.", {"missing": dict(missing)})

    @classmethod
    def unknown(cls, what: str, content_id: Any) -> "Failure":
        return cls("unknown_content", f"Unknown {what} '{content_id}'.", {"id": content_id})


@dataclass(slots=True)
class IntentResult:
    ok: bool
    failure: Failure | None = None
    events: list["CompletionEvent"] = field(default_factory=list)
    message: str = ""

    @classmethod
    def success(cls, message: str = "", events: list["CompletionEvent"] | None = None) -> "IntentResult":
        return cls(ok=True, failure=None, events=list(events or []), message=message)

    @classmethod
    def fail(cls, failure: Failure) -> "IntentResult":
        return cls(ok=False, failure=failure, message=failure.message)

    @property
    def failure_kind(self) -> FailureKind | None:
        return self.failure.kind if self.failure else None
