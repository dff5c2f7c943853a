"""SQLAlchemy ORM models for depositories, micro-deposits and audit events"""

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class DepositoryRecord(Base):
    """Bank account linked by a user (created by the account-linking flow)"""

    __tablename__ = "depositories"

    depository_id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    bank_name = Column(Text, nullable=False, default="")
    holder = Column(Text, nullable=False, default="")
    holder_type = Column(Text, nullable=False, default="individual")
    account_type = Column(Text, nullable=False)
    routing_number = Column(Text, nullable=False)
    account_number = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="unverified")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    last_updated_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)


class MicroDepositRecord(Base):
    """Micro-deposit amount sent to a depository; immutable except merged_filename"""

    __tablename__ = "micro_deposits"

    depository_id = Column(Text, primary_key=True)
    user_id = Column(Text, primary_key=True)
    amount = Column(Text, primary_key=True)  # e.g. "USD 0.12"
    file_id = Column(Text, primary_key=True)
    created_at = Column(DateTime, nullable=False, index=True)
    merged_filename = Column(Text, nullable=True)
    deleted_at = Column(DateTime, nullable=True)


class EventRecord(Base):
    """Audit trail of transfers submitted on a user's behalf"""

    __tablename__ = "events"

    event_id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    topic = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
