"""
unexplained_archive/config/payment_policy.py
Single source of money constants: minimum amounts and the platform fee schedule.

Wallet, checkout and boost code all read from `payment_policy`; no module
keeps its own copy of a minimum.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict


class MoneyOperation(str, Enum):
    """Operations that move money and have a minimum amount."""
    DEPOSIT = "deposit"
    DONATION = "donation"
    BOOST = "boost"
    WITHDRAWAL = "withdrawal"


class FeeKind(str, Enum):
    """Transaction kinds with a platform fee."""
    DONATION = "donation"
    CASE_REWARD = "case_reward"
    WITHDRAWAL = "withdrawal"
    SUBSCRIPTION = "subscription"


def _decimal_env(key: str, default: str) -> Decimal:
    raw = os.getenv(key, default)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        return Decimal(default)


@dataclass(frozen=True)
class PaymentPolicy:
    """Minimums (EUR) and fee rates applied before any remote payment call."""

    minimums: Dict[MoneyOperation, Decimal] = field(default_factory=lambda: {
        MoneyOperation.DEPOSIT: _decimal_env("MIN_DEPOSIT_EUR", "5"),
        MoneyOperation.DONATION: _decimal_env("MIN_DONATION_EUR", "5"),
        MoneyOperation.BOOST: _decimal_env("MIN_BOOST_EUR", "5"),
        MoneyOperation.WITHDRAWAL: _decimal_env("MIN_WITHDRAWAL_EUR", "10"),
    })

    # Card-paid case donations; wallet-paid and platform-wide donations are free
    donation_card_rate: Decimal = Decimal("0.10")
    case_reward_rate: Decimal = Decimal("0.15")
    withdrawal_flat: Decimal = Decimal("2")
    withdrawal_rate: Decimal = Decimal("0.02")
    subscription_rate: Decimal = Decimal("0.05")

    currency: str = "EUR"
    currency_symbol: str = "€"

    def minimum_for(self, operation: MoneyOperation) -> Decimal:
        return self.minimums[MoneyOperation(operation)]


payment_policy = PaymentPolicy()
