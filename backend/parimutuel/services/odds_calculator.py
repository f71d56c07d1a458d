"""
Odds Calculator - Converts a stake pair into complementary implied probabilities
"""
from ..errors import InvalidInputError
from ..models.odds import OddsResult


NEUTRAL_ODDS = OddsResult(yes_price=50, no_price=50)


def _check_stake(value, name: str) -> int:
    # bool is an int subclass but never a stake
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidInputError(f"{name} must be non-negative, got {value}")
    return value


def calculate_odds(stakes_a: int, stakes_b: int) -> OddsResult:
    """
    Implied probabilities from integer microunit stakes.

    yes = round_half_up(100 * a / (a + b)), no = 100 - yes.
    An empty pool is maximally uncertain (50/50).
    """
    stakes_a = _check_stake(stakes_a, 'stakes_a')
    stakes_b = _check_stake(stakes_b, 'stakes_b')

    total = stakes_a + stakes_b
    if total == 0:
        return NEUTRAL_ODDS

    # floor(100a/t + 1/2) in integer arithmetic
    yes_price = (200 * stakes_a + total) // (2 * total)
    return OddsResult(yes_price=yes_price, no_price=100 - yes_price)
