from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    HTTP_ERROR = "http_error"
    RATE_LIMITED = "rate_limited"
    NOT_CONFIGURED = "not_configured"


class RateLimitKind(str, Enum):
    GENERIC = "generic"
    QUOTA_EXHAUSTED = "quota_exhausted"


@dataclass(frozen=True)
class CallOutcome:
    kind: OutcomeKind
    status: Optional[int] = None
    body: str = ""
    reason: Optional[str] = None
    rate_limit: Optional[RateLimitKind] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @staticmethod
    def success(body: str, status: int = 200) -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.SUCCESS, status=status, body=body)

    @staticmethod
    def timeout() -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.TIMEOUT, reason="timeout")

    @staticmethod
    def network_error(reason: str) -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.NETWORK_ERROR, reason=reason)

    @staticmethod
    def http_error(status: int, body: str) -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.HTTP_ERROR, status=status, body=body)

    @staticmethod
    def rate_limited(kind: RateLimitKind, body: str = "") -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.RATE_LIMITED, status=429, body=body, rate_limit=kind)

    @staticmethod
    def not_configured(reason: str) -> "CallOutcome":
        return CallOutcome(kind=OutcomeKind.NOT_CONFIGURED, reason=reason)

    def log_context(self) -> dict:
        """Compact dict for the `context` field of a log record."""
        context: dict = {"outcome": self.kind.value}
        if self.status is not None:
            context["status"] = self.status
        if self.reason:
            context["reason"] = self.reason
        if self.rate_limit is not None:
            context["rate_limit"] = self.rate_limit.value
        if self.body and not self.ok:
            context["body"] = self.body[:200]
        return context
