"""
PCN Challenge Engine - SQLAlchemy ORM Models
Persistent storage for users, vehicles, tickets and generated challenge letters
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum, Boolean
from sqlalchemy.orm import relationship
from ..database import Base
from .ssot import IssuerType


# =============================================================================
# ENUMS
# =============================================================================

class TicketStatus(str, Enum):
    """Lifecycle of a ticket as seen by the user."""
    # Common initial stages
    ISSUED_DISCOUNT_PERIOD = "ISSUED_DISCOUNT_PERIOD"
    ISSUED_FULL_CHARGE = "ISSUED_FULL_CHARGE"

    # Council / TfL flow
    NOTICE_TO_OWNER = "NOTICE_TO_OWNER"
    FORMAL_REPRESENTATION = "FORMAL_REPRESENTATION"
    NOTICE_OF_REJECTION = "NOTICE_OF_REJECTION"
    REPRESENTATION_ACCEPTED = "REPRESENTATION_ACCEPTED"

    # Private parking flow
    NOTICE_TO_KEEPER = "NOTICE_TO_KEEPER"
    APPEAL_SUBMITTED_TO_OPERATOR = "APPEAL_SUBMITTED_TO_OPERATOR"
    APPEAL_REJECTED_BY_OPERATOR = "APPEAL_REJECTED_BY_OPERATOR"

    PAID = "PAID"
    CANCELLED = "CANCELLED"


# Status a ticket moves to once a challenge letter has been generated
CHALLENGED_STATUS = {
    IssuerType.COUNCIL: TicketStatus.FORMAL_REPRESENTATION,
    IssuerType.TFL: TicketStatus.FORMAL_REPRESENTATION,
    IssuerType.PRIVATE_COMPANY: TicketStatus.APPEAL_SUBMITTED_TO_OPERATOR,
}


class UserDB(Base):
    """Account holder - the sender of challenge letters."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Postal address used on letters
    address_line1 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    postcode = Column(String(10), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vehicles = relationship("VehicleDB", back_populates="user", cascade="all, delete-orphan")


class VehicleDB(Base):
    """Vehicle registered to a user."""
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_number = Column(String(16), unique=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="vehicles")
    tickets = relationship("TicketDB", back_populates="vehicle", cascade="all, delete-orphan")


class TicketDB(Base):
    """A single PCN. Manual-entry fields live here; OCR text is kept alongside."""
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True)  # UUID
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)

    pcn_number = Column(String(50), unique=True, nullable=False, index=True)
    issuer = Column(String(255), nullable=True)
    issuer_type = Column(SQLEnum(IssuerType), default=IssuerType.COUNCIL)
    contravention_code = Column(String(10), nullable=True)
    location = Column(String(500), nullable=True)
    issued_at = Column(DateTime, nullable=True)
    initial_amount = Column(Integer, nullable=True)  # pennies

    status = Column(SQLEnum(TicketStatus), default=TicketStatus.ISSUED_DISCOUNT_PERIOD)

    # Source material
    extracted_text = Column(Text, nullable=True)
    image_ref = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vehicle = relationship("VehicleDB", back_populates="tickets")
    letters = relationship(
        "ChallengeLetterDB",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="ChallengeLetterDB.generated_at",
    )


class ChallengeLetterDB(Base):
    """
    Generated challenge letters.

    History is retained for audit; only the row with is_active=True is acted upon.
    """
    __tablename__ = "challenge_letters"

    id = Column(String(36), primary_key=True)  # UUID
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)

    body = Column(Text, nullable=False)
    grounds = Column(JSON)  # List of ChallengeGround values, priority order
    facts_hash = Column(String(64), nullable=False, index=True)

    document_ref = Column(String(500), nullable=False)
    page_count = Column(Integer, default=0)
    attempts = Column(Integer, default=1)

    is_active = Column(Boolean, default=True, index=True)
    generated_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    ticket = relationship("TicketDB", back_populates="letters")
