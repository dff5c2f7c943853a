"""Micro-deposit amount generation and parsing"""

import secrets
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from paygate.domain.models import Amount

# Micro-deposits are between $0.01 and $0.49 inclusive
MIN_MICRO_DEPOSIT_CENTS = 1
MAX_MICRO_DEPOSIT_CENTS = 49


def _random_cents() -> int:
    span = MAX_MICRO_DEPOSIT_CENTS - MIN_MICRO_DEPOSIT_CENTS + 1
    return secrets.randbelow(span) + MIN_MICRO_DEPOSIT_CENTS


def generate_micro_deposit_amounts() -> Tuple[List[Amount], Amount]:
    """
    Generate two random micro-deposit amounts and the reversal that balances them.

    Returns:
        ([amount1, amount2], total) where total == amount1 + amount2 to the cent
    """
    first, second = Amount(cents=_random_cents()), Amount(cents=_random_cents())
    return [first, second], first + second


@dataclass
class AmountParseResult:
    """Outcome of parsing one caller or database supplied amount string"""

    raw: str
    amount: Optional[Amount] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.amount is not None


def parse_amount(raw: str) -> AmountParseResult:
    try:
        return AmountParseResult(raw=raw, amount=Amount.from_string(raw))
    except (ValueError, AttributeError) as e:
        return AmountParseResult(raw=raw, error=str(e))


def parse_amounts(values: Iterable[str]) -> List[AmountParseResult]:
    return [parse_amount(v) for v in values]


def valid_amounts(results: Iterable[AmountParseResult]) -> List[Amount]:
    """Keep only the amounts that parsed; callers decide whether dropping is acceptable"""
    return [r.amount for r in results if r.ok]
