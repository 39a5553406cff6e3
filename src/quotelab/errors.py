from __future__ import annotations

from typing import Iterable


class QuotelabError(Exception):
    """Base class for simulator errors."""


class ConfigError(QuotelabError, ValueError):
    """
    Raised before any step runs when a market or strategy configuration is invalid.

    All problems found are collected in `problems`, so the caller sees the
    full list at once rather than fixing one field at a time.
    """

    def __init__(self, subject: str, problems: Iterable[str]) -> None:
        self.subject = subject
        self.problems = list(problems)
        super().__init__(f"invalid config for {subject}: " + "; ".join(self.problems))


class InvariantViolation(QuotelabError, ArithmeticError):
    """A numeric invariant broke mid-run. Fatal for that market only."""

    def __init__(self, market_id: str, step: int, invariant: str) -> None:
        self.market_id = market_id
        self.step = step
        self.invariant = invariant
        super().__init__(f"market {market_id!r} step {step}: {invariant}")
