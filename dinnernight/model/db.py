from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)


Base = declarative_base()

# Order statuses
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

# Artist statuses
ARTIST_PENDING = "pending"
ARTIST_APPROVED = "approved"


# ----------------------------
# ORM models
# ----------------------------
class TicketCode(Base):
    __tablename__ = "ticket_codes"
    code = Column(Integer, primary_key=True, autoincrement=False)
    is_assigned = Column(Boolean, nullable=False, default=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=True,
                      index=True)
    assigned_at = Column(Float, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(is_assigned AND order_id IS NOT NULL) OR "
            "(NOT is_assigned AND order_id IS NULL)",
            name="ticket_codes_assignment_consistent",
        ),
    )


class Order(Base):
    __tablename__ = "orders"
    id = Column(String, primary_key=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False, index=True)
    customer_phone = Column(String, nullable=False)
    total_amount = Column(Integer, nullable=False)  # kobo
    currency = Column(String, nullable=False, default="ngn")

    # set when the payment is confirmed
    payment_reference = Column(String, nullable=True, unique=True)

    # pending | confirmed | cancelled
    status = Column(String, nullable=False, default=STATUS_PENDING,
                    index=True)
    referral_tag = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    confirmed_at = Column(Float, nullable=True)


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False,
                      index=True)
    position = Column(Integer, nullable=False)
    category = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)  # kobo, from the catalog
    ticket_codes = Column(JSON, nullable=False, default=list)


class Award(Base):
    __tablename__ = "awards"
    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    show_public_counts = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class Awardee(Base):
    __tablename__ = "awardees"
    id = Column(String, primary_key=True)
    award_id = Column(String, ForeignKey("awards.id"), nullable=False,
                      index=True)
    name = Column(String, nullable=False)
    bio = Column(Text, nullable=True)
    photo_url = Column(String, nullable=True)
    slug = Column(String, nullable=False, unique=True)
    created_at = Column(Float, nullable=False)


class Vote(Base):
    __tablename__ = "votes"
    id = Column(String, primary_key=True)
    award_id = Column(String, ForeignKey("awards.id"), nullable=False)
    awardee_id = Column(String, ForeignKey("awardees.id"), nullable=False,
                        index=True)
    voter_email_hash = Column(String, nullable=False, index=True)
    voter_ip = Column(String, nullable=False)
    user_agent = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)

    # one vote per award per voter, enforced by the database
    __table_args__ = (
        UniqueConstraint("award_id", "voter_email_hash",
                         name="votes_unique_voter"),
    )


class Artist(Base):
    __tablename__ = "artists"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    phone = Column(String, nullable=False)
    act_type = Column(String, nullable=False)
    social_link = Column(String, nullable=True)
    referral_code = Column(String, nullable=False, unique=True)
    referred_sales = Column(Integer, nullable=False, default=0)

    # pending | approved
    status = Column(String, nullable=False, default=ARTIST_PENDING,
                    index=True)
    approved_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)

    __table_args__ = (
        CheckConstraint("referred_sales >= 0",
                        name="artists_referred_sales_non_negative"),
    )


class ContestEntry(Base):
    __tablename__ = "contest_entries"
    id = Column(String, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    phone = Column(String, nullable=False)
    department = Column(String, nullable=False)
    level = Column(String, nullable=False)
    bio = Column(Text, nullable=False)
    photo_url = Column(String, nullable=True)
    is_shortlisted = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class SystemLog(Base):
    """Append-only audit trail of payment, webhook and email events."""
    __tablename__ = "system_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    success = Column(Boolean, nullable=False)
    created_at = Column(Float, nullable=False)

    __table_args__ = (
        Index("system_logs_type_created_idx", "type", "created_at"),
    )
