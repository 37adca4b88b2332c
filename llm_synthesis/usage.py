"""Token usage accounting for one analysis session.

Every answered generation call is counted, including empty responses that
are later treated as failures; they were still billed. Calls cut off by a
timeout or a cancellation never produced a response and are not counted.
"""

import logging
from typing import Dict, Optional

from llm_synthesis.schema import TokenUsage, UsageSummary

logger = logging.getLogger(__name__)


class UsageTracker:
    """Cumulative token usage with a per-request-kind call breakdown."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Reset all counters."""
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.call_count = 0
        self.calls_by_kind: Dict[str, int] = {}

    def add(self, kind: str, usage: Optional[TokenUsage]) -> None:
        """Record one answered call.

        Args:
            kind: Request kind (``overall``, ``overview`` or ``batch``).
            usage: Usage reported for the call, or ``None`` when the
                channel reported none.
        """
        self.call_count += 1
        self.calls_by_kind[kind] = self.calls_by_kind.get(kind, 0) + 1
        if usage is None:
            return
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        self.total_tokens += usage.total_tokens or (usage.prompt_tokens + usage.completion_tokens)
        logger.debug(
            "%s call used %d prompt + %d completion tokens",
            kind,
            usage.prompt_tokens,
            usage.completion_tokens,
        )

    def summary(self) -> UsageSummary:
        return UsageSummary(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.total_tokens,
            call_count=self.call_count,
            calls_by_kind=dict(self.calls_by_kind),
        )
