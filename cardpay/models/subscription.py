from enum import Enum
from typing import Optional, TYPE_CHECKING
from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cardpay.shared.db.base import Base

if TYPE_CHECKING:
    from cardpay.models.tenant import Tenant


class SubscriptionState(str, Enum):
    """Derived lifecycle state of a subscription row."""

    UNREGISTERED = "unregistered"
    REGISTERED_INACTIVE = "registered_inactive"
    ACTIVE = "active"
    LAPSED = "lapsed"


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_tenant_active", "tenant_id", "active"),
    )

    tenant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        primary_key=True,
    )
    subscriber_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payer_account: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    subscribed_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    last_renewed_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=False)

    tenant: Mapped["Tenant"] = relationship(back_populates="subscriptions")

    @property
    def renewal_reference_at(self) -> int:
        """Start of the current cycle: last renewal, else subscription time, else epoch."""
        return int(self.last_renewed_at or self.subscribed_at or 0)

    def is_due(self, now: int, cycle_seconds: int) -> bool:
        return (now - self.renewal_reference_at) >= cycle_seconds

    def state(self, now: int, cycle_seconds: int) -> SubscriptionState:
        if not self.payer_account:
            return SubscriptionState.UNREGISTERED
        if not self.active:
            return SubscriptionState.REGISTERED_INACTIVE
        # Active past its deadline: the next sweep renews or deactivates it.
        if self.is_due(now, cycle_seconds):
            return SubscriptionState.LAPSED
        return SubscriptionState.ACTIVE
