"""
Planes, suscripciones y webhook de facturación.
"""

from .models import Plan, Subscription, SubscriptionStatus, PlanType, BillingCycle

__all__ = [
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "PlanType",
    "BillingCycle",
]
