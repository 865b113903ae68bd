from cardpay.modules.billing.domain.billing import (
    ChargeService,
    ChargeVerdict,
    RegistrationService,
    RenewalService,
    TenantAdminService,
)
from cardpay.modules.billing.domain.scheduler import RenewalScheduler

__all__ = [
    "ChargeService",
    "ChargeVerdict",
    "RegistrationService",
    "RenewalScheduler",
    "RenewalService",
    "TenantAdminService",
]
