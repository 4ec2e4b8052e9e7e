from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Boolean, UniqueConstraint, CheckConstraint, false
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from vendrefacile.db.database import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # One thread per buyer and listing; the broker relies on this to resolve races
        UniqueConstraint("annonce_id", "buyer_id", name="uq_conversations_annonce_buyer"),
        CheckConstraint("buyer_id <> seller_id", name="ck_conversations_distinct_participants"),
    )

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column("annonce_id", Integer, ForeignKey("annonces.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    listing = relationship("Listing", back_populates="conversations")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")
