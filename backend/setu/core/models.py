"""
ORM models for database persistence.

WHAT: SQLAlchemy models for dialogue snapshots, listings and network logs
WHY: Sessions are resumed from storage between stateless requests
HOW: Declarative models with JSON snapshot columns, constraints and indexes
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, JSON,
    CheckConstraint, Index
)

from .database import Base


class DialogueSessionRecord(Base):
    """
    Dialogue session table - one row per seller conversation.

    WHAT: Latest serialized DialogueSession plus indexed summary columns
    WHY: Any request can resume any session without in-process state
    HOW: Full pydantic dump in `snapshot`, stage/language duplicated for queries
    """
    __tablename__ = "dialogue_sessions"

    session_id = Column(String(36), primary_key=True)
    language = Column(String(8), nullable=False)
    stage = Column(String(32), nullable=False)
    snapshot = Column(JSON, nullable=False)
    listing_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_dialogue_stage", "stage"),
    )

    def __repr__(self):
        return f"<DialogueSessionRecord(session_id={self.session_id}, stage={self.stage})>"


class ListingRecord(Base):
    """
    Listing table - validated listings and their broadcast status.

    WHAT: Listing fields plus status (draft -> broadcast -> sold)
    WHY: Broadcast is requested by listing id after the dialogue confirms
    HOW: Flat columns mirroring the Listing model; status guarded by a CHECK constraint
    """
    __tablename__ = "listings"

    listing_id = Column(String(36), primary_key=True)
    session_id = Column(String(36), nullable=True)
    commodity = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False)
    quantity_kg = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    price = Column(Float, nullable=True)
    currency = Column(String(3), nullable=False)
    grade = Column(String(50), nullable=True)
    origin = Column(String(100), nullable=True)
    perishability = Column(String(10), nullable=False, default="medium")
    market_quote = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="draft")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("quantity_kg > 0", name="check_listing_quantity_positive"),
        CheckConstraint("price IS NULL OR price >= 0", name="check_listing_price_non_negative"),
        CheckConstraint("status IN ('draft', 'broadcast', 'sold')", name="check_listing_status"),
        Index("idx_listing_session", "session_id"),
    )

    def __repr__(self):
        return f"<ListingRecord(listing_id={self.listing_id}, commodity={self.commodity}, status={self.status})>"


class NetworkLog(Base):
    """
    Network log table - audit trail of broadcasts.

    WHAT: outgoing_listing and incoming_bid events
    WHY: Every broadcast leaves exactly one outcome record for later review
    HOW: Event type + JSON payload, indexed by type and timestamp
    """
    __tablename__ = "network_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("type IN ('outgoing_listing', 'incoming_bid')", name="check_network_log_type"),
        Index("idx_network_log_type_time", "type", "timestamp"),
    )

    def __repr__(self):
        return f"<NetworkLog(id={self.id}, type={self.type})>"
