"""
Escrow and reward arithmetic.

Pure functions over Decimal: platform fees, minimum-amount checks, reward
split validation and payout previews. The backend computes the real ledger
entries; these figures are what the user sees before confirming and what
input is checked against before any remote call.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Sequence, Union

from unexplained_archive.config.payment_policy import FeeKind, MoneyOperation, payment_policy
from unexplained_archive.exceptions import ValidationFailedError
from unexplained_archive.schemas.team import PayoutLine, RewardSplit, TeamMember, TeamRole

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Decimal rounded half-up to cents. Floats go through str() to avoid binary noise."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_eur(amount: Number) -> str:
    """`€5`, `€12.50`"""
    amount = to_money(amount)
    text = f"{amount:.0f}" if amount == amount.to_integral_value() else f"{amount:.2f}"
    return f"{payment_policy.currency_symbol}{text}"


# ================= FEES =================

def calculate_platform_fee(
    amount: Number,
    kind: FeeKind,
    is_platform_donation: bool = False,
    payment_method: str = "card",
) -> Decimal:
    """
    Platform fee for a transaction.

    donation: 10% by card, 0% from wallet, 0% to the platform itself
    case_reward: 15%
    withdrawal: €2 + 2%
    subscription: 5%
    """
    amount = to_money(amount)
    kind = FeeKind(kind)

    if kind == FeeKind.DONATION:
        if is_platform_donation or payment_method == "wallet":
            return Decimal("0.00")
        return to_money(amount * payment_policy.donation_card_rate)
    if kind == FeeKind.CASE_REWARD:
        return to_money(amount * payment_policy.case_reward_rate)
    if kind == FeeKind.WITHDRAWAL:
        return to_money(payment_policy.withdrawal_flat + amount * payment_policy.withdrawal_rate)
    if kind == FeeKind.SUBSCRIPTION:
        return to_money(amount * payment_policy.subscription_rate)
    return Decimal("0.00")


def calculate_net_amount(
    amount: Number,
    kind: FeeKind,
    is_platform_donation: bool = False,
    payment_method: str = "card",
) -> Decimal:
    """Amount after the platform fee."""
    return to_money(amount) - calculate_platform_fee(amount, kind, is_platform_donation, payment_method)


# ================= MINIMUMS =================

def ensure_minimum(amount: Number, operation: MoneyOperation) -> Decimal:
    """
    Refuse amounts that are not positive or below the operation's minimum.
    The unrounded amount is compared, so 4.995 is still below a 5.00 minimum.
    Returns the amount as money on success.
    """
    operation = MoneyOperation(operation)
    value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
    if value <= 0:
        raise ValidationFailedError("Amount must be greater than zero")

    minimum = payment_policy.minimum_for(operation)
    if value < minimum:
        noun = "withdrawal" if operation == MoneyOperation.WITHDRAWAL else "payment"
        raise ValidationFailedError(
            f"Minimum {noun} amount is {format_eur(minimum)}",
            details={"minimum": str(minimum), "operation": operation.value},
        )
    return to_money(value)


# ================= REWARD SPLIT =================

def validate_split(splits: Sequence[RewardSplit]) -> None:
    """
    A split is valid when every share is an integer 0..100, each investigator
    appears once and the shares sum to exactly 100.
    """
    if not splits:
        raise ValidationFailedError("Reward split must include at least one investigator")

    seen = set()
    for split in splits:
        if not isinstance(split.percentage, int) or split.percentage < 0 or split.percentage > 100:
            raise ValidationFailedError("Each percentage must be a whole number between 0 and 100")
        if split.investigator_id in seen:
            raise ValidationFailedError("Each investigator may appear only once in the split")
        seen.add(split.investigator_id)

    total = sum(split.percentage for split in splits)
    if total != 100:
        raise ValidationFailedError("Total percentage must equal 100%", details={"total": total})


def payout_preview(total: Number, splits: Iterable[RewardSplit]) -> List[PayoutLine]:
    """Display-only amounts per member: total × pct / 100, rounded to cents."""
    total = to_money(total)
    return [
        PayoutLine(
            investigator_id=split.investigator_id,
            percentage=split.percentage,
            amount=to_money(total * split.percentage / Decimal(100)),
        )
        for split in splits
    ]


def equal_split(members: Sequence[TeamMember]) -> List[RewardSplit]:
    """
    floor(100 / n) for each active member; the remainder goes to the leader,
    or to the first member when there is no leader. Always sums to 100.
    """
    active = [m for m in members if m.status == "active"]
    if not active:
        return []

    share = 100 // len(active)
    remainder = 100 - share * len(active)

    recipient = 0
    for index, member in enumerate(active):
        if member.role == TeamRole.LEADER:
            recipient = index
            break

    return [
        RewardSplit(
            investigator_id=member.investigator_id,
            percentage=share + remainder if index == recipient else share,
        )
        for index, member in enumerate(active)
    ]
