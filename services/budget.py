# services/budget.py
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional, Union

from models import CryptoBudget, FiatBudget
from services.coingecko_service import CoinGeckoService


def plain_number(amount: Decimal) -> str:
    """Render a decimal the way it reads in the form: 1500 not 1500.00, 2.5 not 2.50."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def whole_units(value: Decimal) -> str:
    """Round half-up to 0 dp with thousands grouping: 100000 -> '100,000'."""
    with localcontext() as ctx:
        # quantize needs room for every integer digit
        ctx.prec = max(ctx.prec, value.adjusted() + 2)
        rounded = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{rounded:,.0f}"


def format_budget(spec: Union[FiatBudget, CryptoBudget], value: Optional[Decimal] = None) -> str:
    if isinstance(spec, FiatBudget):
        return f"{plain_number(spec.amount)} {spec.currency_code}"
    if value is None:
        raise ValueError("crypto budgets need a resolved USD value")
    return f"approx. ${whole_units(value)} USD (from {plain_number(spec.amount)} {spec.coin.name})"


async def describe_budget(spec: Union[FiatBudget, CryptoBudget], prices: CoinGeckoService) -> str:
    """Budget description for the prompt. Crypto specs hit the price service first."""
    if isinstance(spec, FiatBudget):
        return format_budget(spec)
    value = await prices.resolve_value(spec.coin.id, spec.amount)
    return format_budget(spec, value)
