"""
Order Preview Calculator - Shares, payout and profit for a prospective stake
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from ..errors import ValidationError
from ..models.odds import Outcome, OrderPreview
from ..models.pool import MICROUNITS_PER_UNIT
from .odds_calculator import calculate_odds


AmountInput = Union[str, int, float, Decimal, None]

# Shares are priced at no less than 1% so a side with zero implied
# probability still yields a finite preview.
MIN_SHARE_PRICE = 1


def parse_amount(amount: AmountInput) -> Optional[Decimal]:
    """
    Parse a user-entered amount in display units.

    Returns None for the "nothing entered yet" states: empty input, zero,
    negative or non-finite values. Raises ValidationError for input that is
    not a number at all.
    """
    if amount is None:
        return None
    if isinstance(amount, bool):
        raise ValidationError(f"{amount!r} is not a number")

    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, (int, float)):
        # via str() so 0.1 stays 0.1 rather than its binary expansion
        value = Decimal(str(amount))
    elif isinstance(amount, str):
        text = amount.strip()
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{amount!r} is not a number")
    else:
        raise ValidationError(f"unsupported amount type {type(amount).__name__}")

    if not value.is_finite() or value <= 0:
        return None
    return value


def parse_outcome(outcome: Union[Outcome, str]) -> Outcome:
    try:
        return Outcome(outcome)
    except ValueError:
        raise ValidationError(f"unknown outcome {outcome!r}")


def preview_order(
    amount: AmountInput,
    outcome: Union[Outcome, str],
    stakes_a: int,
    stakes_b: int,
) -> Optional[OrderPreview]:
    """
    Preview a stake of `amount` display units on `outcome`.

    - avg_price: implied probability (%) of the chosen side at current stakes
    - shares: amount / (avg_price / 100)
    - odds: (total + amount) / (side + amount), i.e. on the post-trade pool
    - potential_return: shares * odds
    - profit: potential_return - amount

    Stakes are integer microunits; amount is converted exactly.
    """
    value = parse_amount(amount)
    if value is None:
        return None
    side = parse_outcome(outcome)

    odds = calculate_odds(stakes_a, stakes_b)
    avg_price = odds.price_for(side)

    amount_micro = value * MICROUNITS_PER_UNIT
    side_stake = stakes_a if side == Outcome.YES else stakes_b
    total = stakes_a + stakes_b
    payout_multiplier = (Decimal(total) + amount_micro) / (Decimal(side_stake) + amount_micro)

    shares = value * 100 / max(avg_price, MIN_SHARE_PRICE)
    potential_return = shares * payout_multiplier

    return OrderPreview(
        amount=value,
        outcome=side,
        odds=payout_multiplier,
        avg_price=avg_price,
        shares=shares,
        potential_return=potential_return,
        profit=potential_return - value,
    )
