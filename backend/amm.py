"""
Constant-product pool maths.

All amounts are integers in the token's smallest unit; prices are
floats in quote units per base unit after decimal adjustment.
"""

from config import BPS_DENOMINATOR, FEE_BPS

MAX_PRICE_IMPACT = 100.0


def calculate_swap_output(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_bps: int = FEE_BPS,
) -> int:
    """
    Output of swapping amount_in into a constant-product pool.

    amountOut = amountIn*(1-fee)*reserveOut / (reserveIn + amountIn*(1-fee))
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def calculate_price_impact(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_bps: int = FEE_BPS,
) -> float:
    """
    Price impact in percent of a trade against the pool.

    Measured against the ideal quote for the post-fee input, so the swap
    fee itself does not count as impact. Empty pools are 100% impact.
    """
    if reserve_in <= 0 or reserve_out <= 0:
        return MAX_PRICE_IMPACT
    if amount_in <= 0:
        return 0.0

    amount_out = calculate_swap_output(amount_in, reserve_in, reserve_out, fee_bps)
    # Fee-adjusted convention: the raw amount_in quote would add the fee on top (~9.30% vs ~9.07%)
    effective_in = amount_in * (BPS_DENOMINATOR - fee_bps) / BPS_DENOMINATOR
    exact_quote = effective_in * reserve_out / reserve_in
    if exact_quote <= 0:
        return MAX_PRICE_IMPACT

    return (exact_quote - amount_out) / exact_quote * 100


def min_amount_out(expected_out: int, slippage_bps: int) -> int:
    """Minimum acceptable output for a slippage bound in basis points."""
    return expected_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def spot_price(
    base_reserve: int,
    quote_reserve: int,
    base_decimals: int,
    quote_decimals: int,
) -> float:
    """Quote-per-base price from reserves, adjusted for decimals. 0 if the pool is empty."""
    if base_reserve <= 0:
        return 0.0
    return (quote_reserve / base_reserve) * (10 ** (base_decimals - quote_decimals))


def to_ui_amount(amount: int, decimals: int) -> float:
    return amount / (10 ** decimals)


def to_base_units(ui_amount: float, decimals: int) -> int:
    return int(round(ui_amount * (10 ** decimals)))
