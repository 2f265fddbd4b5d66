import secrets
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Integer, String

from .database import Base


class GiftType(str, Enum):
    NORMAL = "normal"
    VIP = "vip"


class GiftStatus(str, Enum):
    FREE = "free"
    RESERVED = "reserved"
    WAITING_PAYMENT = "waiting_payment"
    PAID = "paid"
    USED = "used"


# Statuses in which a requester holds the gift and may still cancel it
HELD_STATUSES = (GiftStatus.RESERVED.value, GiftStatus.WAITING_PAYMENT.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Eight upper-case hex characters, the format buyers type on the front-end."""
    return secrets.token_hex(4).upper()


class Gift(Base):
    __tablename__ = "gifts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('free', 'reserved', 'waiting_payment', 'paid', 'used')",
            name="ck_gifts_status",
        ),
        CheckConstraint("type IN ('normal', 'vip')", name="ck_gifts_type"),
        CheckConstraint(
            "(status IN ('reserved', 'waiting_payment')) = reserved",
            name="ck_gifts_reserved_matches_status",
        ),
        CheckConstraint("(status = 'used') = is_used", name="ck_gifts_used_matches_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, nullable=True, index=True)
    type = Column(String(16), nullable=False, default=GiftType.NORMAL.value, index=True)
    status = Column(String(32), nullable=False, default=GiftStatus.FREE.value, index=True)

    reserved = Column(Boolean, nullable=False, default=False)
    reserved_at = Column(DateTime(timezone=True), nullable=True)
    tg_user_id = Column(BigInteger, nullable=True, index=True)
    payment_id = Column(String(128), nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def gift_status(self) -> GiftStatus:
        return GiftStatus(self.status)

    @property
    def gift_type(self) -> GiftType:
        return GiftType(self.type)

    def __repr__(self) -> str:
        return f"<Gift id={self.id} code={self.code} status={self.status}>"
