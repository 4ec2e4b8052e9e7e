from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Float, Numeric,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from vendrefacile.db.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    parent = relationship("Category", remote_side=[id], backref="children")


class Listing(Base):
    __tablename__ = "annonces"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'sold', 'archived')", name="ck_annonces_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=True, index=True)
    city = Column(String(100), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    # Stored as user_id to match the existing schema
    owner_id = Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active", server_default="active", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="listings")
    category = relationship("Category")
    favorites = relationship("Favorite", back_populates="listing", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="listing", cascade="all, delete-orphan")


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "annonce_id", name="uq_favorites_user_annonce"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    listing_id = Column("annonce_id", Integer, ForeignKey("annonces.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="favorites")
    listing = relationship("Listing", back_populates="favorites")
