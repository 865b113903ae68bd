"""
Model package initializer.

Importing this package registers every ORM mapping, so scripts and workers
that only touch the DB layer still see the full schema.
"""

from cardpay.models.tenant import Tenant
from cardpay.models.subscription import Subscription, SubscriptionState
from cardpay.models.payment_attempt import PaymentAttempt

__all__ = ["Tenant", "Subscription", "SubscriptionState", "PaymentAttempt"]
