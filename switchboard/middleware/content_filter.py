"""
Content filter middleware — pattern rules with severities.

Every matching rule becomes a flag. The request is blocked only when at least
one flag is at or above `block_severity` (default "high"); lower flags are
left in context.metadata["content_filter_result"] for later middleware.

The built-in rules (PII shapes, two prompt-injection phrasings) are
illustrative defaults, not a safety system.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from switchboard.middleware.pipeline import Middleware, NextFn
from switchboard.models import MiddlewareContext, MiddlewareResult

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"low": 0, "medium": 1, "high": 2, "critical": 3}
RULE_TYPES = ("profanity", "pii", "injection", "harmful", "custom")


@dataclass
class ContentFilterRule:
    name: str
    type: str
    severity: str
    pattern: re.Pattern
    description: str | None = None

    def __post_init__(self):
        if self.type not in RULE_TYPES:
            raise ValueError(f"Unknown rule type '{self.type}'")
        if self.severity not in SEVERITY_ORDER:
            raise ValueError(f"Unknown severity '{self.severity}'")
        if isinstance(self.pattern, str):
            self.pattern = re.compile(self.pattern)


@dataclass
class ContentFlag:
    type: str
    severity: str
    match: str
    description: str | None = None


@dataclass
class ContentFilterResult:
    safe: bool
    flags: list[ContentFlag] = field(default_factory=list)


# ── Default rules ────────────────────────────────────────────────────────────

DEFAULT_FILTER_RULES: list[ContentFilterRule] = [
    ContentFilterRule(
        "email-pii", "pii", "medium",
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
        "Email address detected",
    ),
    ContentFilterRule(
        "phone-pii", "pii", "medium",
        re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
        "Phone number detected",
    ),
    ContentFilterRule(
        "ssn-pii", "pii", "critical",
        re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
        "SSN pattern detected",
    ),
    ContentFilterRule(
        "credit-card-pii", "pii", "critical",
        re.compile(r"\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b"),
        "Credit card number detected",
    ),
    ContentFilterRule(
        "prompt-injection", "injection", "high",
        re.compile(
            r"(?:ignore|forget|disregard)\s+(?:all\s+)?(?:previous|above|prior)\s+(?:instructions|prompts|context)",
            re.IGNORECASE,
        ),
        "Prompt injection attempt detected",
    ),
    ContentFilterRule(
        "system-prompt-extraction", "injection", "high",
        re.compile(
            r"(?:show|reveal|display|output|print|repeat)\s+(?:your\s+)?(?:system\s+)?(?:prompt|instructions|rules)",
            re.IGNORECASE,
        ),
        "System prompt extraction attempt detected",
    ),
]


def filter_content(content: str, rules: list[ContentFilterRule]) -> ContentFilterResult:
    """Run every rule in order; collect all matches."""
    flags = [
        ContentFlag(type=r.type, severity=r.severity, match=r.name, description=r.description)
        for r in rules
        if r.pattern.search(content)
    ]
    return ContentFilterResult(safe=not flags, flags=flags)


class ContentFilter:
    name = "content-filter"
    priority = -90

    def __init__(
        self,
        rules: list[ContentFilterRule] | None = None,
        use_defaults: bool = True,
        block_severity: str = "high",
    ):
        if block_severity not in SEVERITY_ORDER:
            raise ValueError(f"Unknown severity '{block_severity}'")
        custom = list(rules or [])
        self.rules = (list(DEFAULT_FILTER_RULES) + custom) if use_defaults else custom
        self.block_severity = block_severity
        self._threshold = SEVERITY_ORDER[block_severity]

    def check(self, content: str) -> tuple[ContentFilterResult, bool]:
        """Return (result, should_block)."""
        result = filter_content(content, self.rules)
        blocked = any(SEVERITY_ORDER[f.severity] >= self._threshold for f in result.flags)
        return result, blocked

    async def execute(self, context: MiddlewareContext, next: NextFn) -> MiddlewareResult:
        result, blocked = self.check(context.request.message)
        context.metadata["content_filter_result"] = result

        if blocked:
            names = ", ".join(f.match for f in result.flags)
            logger.warning(
                "Content filter blocked message (conv=%s, flags=%s)",
                context.conversation.id[:16], names,
            )
            return MiddlewareResult(
                proceed=False,
                context=context,
                error=f"Message blocked by content filter: {names}",
            )

        if result.flags:
            logger.debug("Content filter flagged below threshold: %s", [f.match for f in result.flags])
        return await next()

    def as_middleware(self) -> Middleware:
        return Middleware(
            name=self.name,
            execute=self.execute,
            priority=self.priority,
            description="Content safety and moderation filter",
        )


def create_content_filter(
    rules: list[ContentFilterRule] | None = None,
    use_defaults: bool = True,
    block_severity: str = "high",
) -> Middleware:
    return ContentFilter(rules=rules, use_defaults=use_defaults, block_severity=block_severity).as_middleware()
