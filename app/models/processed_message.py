"""Message deduplication model"""

import uuid
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint, Uuid

from app.core.timeutils import utcnow
from app.database import Base


class ProcessedMessage(Base):
    """Result of a mutating function call, keyed by inbound message"""
    __tablename__ = "processed_messages"
    __table_args__ = (
        UniqueConstraint("business_id", "customer_identifier", "dedup_key", name="uq_processed_messages_key"),
    )
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, nullable=False)
    customer_identifier = Column(String(100), nullable=False)
    dedup_key = Column(String(255), nullable=False)
    function_name = Column(String(100), nullable=False)
    response_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
