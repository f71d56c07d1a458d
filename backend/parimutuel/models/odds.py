"""
Odds and Order Preview Models
"""
from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from enum import Enum


_CENT = Decimal("0.01")


def display_round(value: Decimal) -> float:
    """Round a currency amount to 2 decimal places for display."""
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


class Outcome(str, Enum):
    """Binary outcome. YES is option A of the pool, NO is option B."""
    YES = "Yes"
    NO = "No"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


@dataclass(frozen=True)
class OddsResult:
    """Implied probabilities in whole percent. Always sums to 100."""
    yes_price: int
    no_price: int

    def price_for(self, outcome: Outcome) -> int:
        return self.yes_price if outcome == Outcome.YES else self.no_price

    def to_dict(self) -> dict:
        return {
            'yes_price': self.yes_price,
            'no_price': self.no_price,
        }


@dataclass(frozen=True)
class OrderPreview:
    """
    Preview of a prospective stake. Recomputed on every input change and
    never cached.

    Values are exact Decimals; `profit == potential_return - amount` holds
    without rounding error. Use `to_dict()` for 2dp display values.
    """
    amount: Decimal
    outcome: Outcome
    odds: Decimal               # Parimutuel payout multiplier on the post-trade pool
    avg_price: int              # Implied probability for the chosen outcome, %
    shares: Decimal
    potential_return: Decimal
    profit: Decimal

    def to_dict(self) -> dict:
        amount = display_round(self.amount)
        potential_return = display_round(self.potential_return)
        return {
            'amount': amount,
            'outcome': self.outcome.value,
            'odds': display_round(self.odds),
            'avg_price': self.avg_price,
            'shares': display_round(self.shares),
            'potential_return': potential_return,
            # Derived from the rounded values so the displayed numbers add up
            'profit': display_round(Decimal(str(potential_return)) - Decimal(str(amount))),
        }
