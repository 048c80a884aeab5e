from unexplained_archive.schemas.case import Case, CaseStatus, CaseCategory, EvidenceFile, Review
from unexplained_archive.schemas.team import TeamMember, TeamInvitation, RewardSplit, PayoutLine
from unexplained_archive.schemas.wallet import Wallet, Transaction, WalletSnapshot, TransactionLimits
from unexplained_archive.schemas.boost import Boost, BoostType, BoostPricing, BoostROI
from unexplained_archive.schemas.community import Comment, Theory, VoteState
from unexplained_archive.schemas.payments import CheckoutSession, PaymentReturn, Subscription

__all__ = [
    "Case", "CaseStatus", "CaseCategory", "EvidenceFile", "Review",
    "TeamMember", "TeamInvitation", "RewardSplit", "PayoutLine",
    "Wallet", "Transaction", "WalletSnapshot", "TransactionLimits",
    "Boost", "BoostType", "BoostPricing", "BoostROI",
    "Comment", "Theory", "VoteState",
    "CheckoutSession", "PaymentReturn", "Subscription",
]
