from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cardpay.shared.db.base import Base

if TYPE_CHECKING:
    from cardpay.models.subscription import Subscription


class Tenant(Base):
    """
    One served community.

    A tenant without a receiving card is still provisioning: it is never
    billed and never processes subscribers.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    log_channel_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    receiving_account: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True
    )
    # Decimal text with up to 8 fractional digits, e.g. "0.05000000"
    price: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    role_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Epoch seconds, 0 = never charged
    last_payment_at: Mapped[int] = mapped_column(BigInteger, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=False)

    subscriptions: Mapped[List["Subscription"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_billable(self) -> bool:
        return bool((self.receiving_account or "").strip())
