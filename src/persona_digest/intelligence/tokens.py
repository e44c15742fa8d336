"""Cheap token estimation and budget-aware truncation."""

from __future__ import annotations

import math
from dataclasses import dataclass

TRUNCATION_MARKER = "\n\n[... content truncated ...]\n\n"


@dataclass(frozen=True, slots=True)
class TokenBudgetEstimator:
    """Estimate prompt size from character counts and trim oversized text.

    ``input_ratio`` is the share of a profile's token budget a prompt may use
    before the body gets truncated.
    """

    chars_per_token: int = 4
    input_ratio: float = 0.8
    min_retained_chars: int = 200

    def estimate(self, text: str) -> int:
        """Return the approximate token count of ``text``."""
        return math.ceil(len(text) / self.chars_per_token)

    def input_budget(self, max_tokens: int) -> int:
        """Return the number of tokens a prompt may occupy."""
        return int(max_tokens * self.input_ratio)

    def fits(self, text: str, max_tokens: int) -> bool:
        """Return ``True`` when ``text`` stays within the input budget."""
        return self.estimate(text) <= self.input_budget(max_tokens)

    def max_input_chars(self, max_tokens: int) -> int:
        """Return the character allowance matching the input budget."""
        return self.input_budget(max_tokens) * self.chars_per_token

    def truncate(self, text: str, max_chars: int) -> str:
        """Keep a prefix and a suffix of ``text`` joined by a visible marker."""
        if len(text) <= max_chars:
            return text
        allowance = max(max_chars, self.min_retained_chars) - len(TRUNCATION_MARKER)
        allowance = max(allowance, 2)
        if allowance >= len(text):
            return text
        head = math.ceil(allowance * 0.6)
        tail = allowance - head
        suffix = text[len(text) - tail :] if tail else ""
        return text[:head] + TRUNCATION_MARKER + suffix

    def fit_body(self, prompt: str, body: str, max_tokens: int) -> str:
        """Shrink ``body`` so that ``prompt`` (which embeds it) fits the budget."""
        if self.fits(prompt, max_tokens):
            return body
        overhead = max(len(prompt) - len(body), 0)
        return self.truncate(body, self.max_input_chars(max_tokens) - overhead)


__all__ = ["TRUNCATION_MARKER", "TokenBudgetEstimator"]
