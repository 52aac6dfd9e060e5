"""
Contractor (meal supplier) and Supporter models
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from backend.database import Base


class Contractor(Base):
    __tablename__ = "contractors"

    id = Column(Integer, primary_key=True, index=True)
    contractor_nic_number = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String, nullable=False)
    contact_number = Column(String, nullable=False)
    address = Column(String, nullable=False)

    # Agreement info
    agreement_number = Column(String, nullable=True)
    agreement_start_date = Column(Date, nullable=True)
    agreement_end_date = Column(Date, nullable=True)

    # Status
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supporter = relationship("Supporter", back_populates="contractor", uselist=False)

    __table_args__ = (
        # At most one active contractor, enforced by the database itself
        Index(
            "uq_contractors_single_active",
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class Supporter(Base):
    """Optional second party on a contractor's agreement (zero or one per contractor)"""
    __tablename__ = "supporters"

    id = Column(Integer, primary_key=True, index=True)
    contractor_id = Column(Integer, ForeignKey("contractors.id"), unique=True, nullable=False)
    supporter_nic_number = Column(String, unique=True, nullable=False, index=True)
    supporter_name = Column(String, nullable=False)
    supporter_contact_number = Column(String, nullable=False)
    supporter_address = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contractor = relationship("Contractor", back_populates="supporter")
