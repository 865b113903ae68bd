"""Billing Services."""

from cardpay.modules.billing.domain.billing.charge_service import (
    ChargeService,
    ChargeVerdict,
)
from cardpay.modules.billing.domain.billing.coin_client_impl import CoinBankClient
from cardpay.modules.billing.domain.billing.registration_service import (
    RegistrationResult,
    RegistrationService,
)
from cardpay.modules.billing.domain.billing.renewal_service import (
    RenewalService,
    SweepReport,
)
from cardpay.modules.billing.domain.billing.tenant_admin import TenantAdminService
from cardpay.modules.billing.domain.billing.verification import (
    OutcomeVerifier,
    Verification,
)


__all__ = [
    "ChargeService",
    "ChargeVerdict",
    "CoinBankClient",
    "OutcomeVerifier",
    "RegistrationResult",
    "RegistrationService",
    "RenewalService",
    "SweepReport",
    "TenantAdminService",
    "Verification",
]
