"""
Expense voucher model - routed from a DEO to the active VO for approval
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from backend.database import Base


class VoucherStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = {VoucherStatus.APPROVED, VoucherStatus.REJECTED}


class Voucher(Base):
    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True)

    # Serialized document reference, e.g. {"downloadURL": "...", "fileName": "..."}
    url_data = Column(Text, nullable=False)

    status = Column(SQLEnum(VoucherStatus, native_enum=False), nullable=False, default=VoucherStatus.PENDING)
    comment = Column(Text, nullable=True)

    deo_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vo_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    deo = relationship("User", foreign_keys=[deo_id])
    vo = relationship("User", foreign_keys=[vo_id])
