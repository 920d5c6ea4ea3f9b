"""
Module 'subscriptions' (feature-first): attachement d'abonnement, vérification de prix, réparation.
"""
from .pricing import (
    PricingExpectation,
    VerificationResult,
    calculate_expected_partial_month_price,
    expected_partial_month_price,
    verify_subscription_pricing,
)
from .repair import RepairOutcome, RepairStrategy, RetryPolicy, StrategyAbandoned, run_policy
from .service import ensure_subscription_attached

__all__ = [
    # pricing
    "PricingExpectation",
    "VerificationResult",
    "calculate_expected_partial_month_price",
    "expected_partial_month_price",
    "verify_subscription_pricing",
    # repair
    "RepairOutcome",
    "RepairStrategy",
    "RetryPolicy",
    "StrategyAbandoned",
    "run_policy",
    # services
    "ensure_subscription_attached",
]
