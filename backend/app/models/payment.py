from sqlalchemy import Column, String, Boolean, DateTime, Date, Enum as SQLEnum, Integer, Float, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base


class PolicyUnit(str, enum.Enum):
    """How a policy amount is applied"""
    FIXED = "FIXED"      # flat amount, or percent of the book price for damage policies
    PER_DAY = "PER_DAY"  # multiplied by the number of overdue days


class Policy(Base):
    """Fee policy, identified by a string code such as LOST_BOOK"""
    __tablename__ = "policies"

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)
    unit = Column(SQLEnum(PolicyUnit), default=PolicyUnit.FIXED, nullable=False)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Policy {self.id}>"


class Payment(Base):
    """A fee owed by a reader for a loan"""
    __tablename__ = "payments"

    __table_args__ = (
        Index('ix_payments_borrow_record_id', 'borrow_record_id'),
        Index('ix_payments_is_paid', 'is_paid'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(String(50), ForeignKey("policies.id"), nullable=False)
    borrow_record_id = Column(Integer, ForeignKey("borrow_records.id"), nullable=False)
    amount = Column(Float, nullable=False)
    is_paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    due_date = Column(Date, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    policy = relationship("Policy", lazy="selectin")
    borrow_record = relationship("BorrowRecord", back_populates="payments", lazy="selectin")

    def __repr__(self):
        return f"<Payment {self.id} {self.policy_id} {self.amount}>"
