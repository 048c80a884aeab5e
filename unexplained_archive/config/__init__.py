from unexplained_archive.config.settings import settings, get_bool_env
from unexplained_archive.config.feature_flags import feature_flags, RejectionRatingPolicy
from unexplained_archive.config.payment_policy import payment_policy, PaymentPolicy, MoneyOperation, FeeKind

__all__ = [
    "settings",
    "get_bool_env",
    "feature_flags",
    "RejectionRatingPolicy",
    "payment_policy",
    "PaymentPolicy",
    "MoneyOperation",
    "FeeKind",
]
