"""
Token counting and usage tracking.

Holds the four token counters reported on every assistant turn.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts as reported in the usage log, no estimation.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens across all four counters."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    @property
    def is_empty(self) -> bool:
        """True when no counter carries billable tokens."""
        return self.total_tokens == 0
