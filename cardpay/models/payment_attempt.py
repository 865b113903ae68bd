from typing import Optional
from sqlalchemy import BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cardpay.shared.db.base import Base


class PaymentAttempt(Base):
    """
    Append-only audit row, one per charge attempt (retries included).

    ``raw`` holds the JSON of both strategy responses:
    ``{"direct": ..., "bill": ...}``; ``bill`` is null when the direct
    charge already succeeded.
    """

    __tablename__ = "payment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    # Null for tenant-level charges
    subscriber_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source_account: Mapped[str] = mapped_column(String(128))
    destination_account: Mapped[str] = mapped_column(String(128))
    amount: Mapped[str] = mapped_column(String(32))
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    txid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    raw: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger)
