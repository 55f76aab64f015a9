from typing import NamedTuple, Optional


class ProfitCheck(NamedTuple):
    ok: bool
    surplus: Optional[int]


def evaluate(final_balance: int, amount_owed: int, min_profit: int) -> ProfitCheck:
    """Minimum-surplus bar for a finished sequence; surplus is None when unmet."""
    if final_balance >= amount_owed + min_profit:
        return ProfitCheck(True, final_balance - amount_owed)
    return ProfitCheck(False, None)
