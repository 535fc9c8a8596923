import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from config.settings import DEFAULT_CONVERSATION_TITLE, TIER_FREE
from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Registered farmer account, identified by a verified phone number.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    phone_number = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    language_preference = Column(String(8), default="en", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, default=datetime.utcnow, nullable=True)


class Subscription(Base):
    """
    Subscription tier for a user. The current row is the latest active one.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    tier = Column(String(8), default=TIER_FREE, nullable=False)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    payment_reference = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserUsage(Base):
    """Daily usage counters per user."""
    __tablename__ = "user_usage"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_user_usage_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    message_count = Column(Integer, default=0, nullable=False)
    weather_queries = Column(Integer, default=0, nullable=False)
    market_queries = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, default=DEFAULT_CONVERSATION_TITLE, nullable=False)
    language = Column(String(8), default="en", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(String(16), nullable=False)  # "user" | "assistant"
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    audio_url = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class VerificationCode(Base):
    """One-time phone verification codes; only the hash is stored."""
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String, nullable=False, index=True)
    code_hash = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    failed_attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QueryAnalytics(Base):
    __tablename__ = "query_analytics"

    id = Column(Integer, primary_key=True, index=True)
    query_type = Column(String(32), nullable=False)
    language = Column(String(8), default="en", nullable=False)
    success = Column(Boolean, default=True, nullable=False)
    response_time = Column(Float, nullable=True)  # milliseconds
    source = Column(String(16), nullable=True)  # "remote" | "local"
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WeatherData(Base):
    __tablename__ = "weather_data"

    id = Column(Integer, primary_key=True, index=True)
    location = Column(String, nullable=False, index=True)
    temperature = Column(Float, nullable=True)
    condition = Column(String, nullable=True)
    humidity = Column(Float, nullable=True)
    wind_speed = Column(Float, nullable=True)
    forecast = Column(JSON, nullable=True)
    fetched_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    valid_until = Column(DateTime, nullable=False)


class MarketPrice(Base):
    __tablename__ = "market_prices"

    id = Column(Integer, primary_key=True, index=True)
    product_name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    market_location = Column(String, nullable=False, index=True)
    currency = Column(String(8), default="USD", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
