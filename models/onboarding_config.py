from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ItemType


class TicketGroup(Base):
    """One child ticket is created per ticket group during onboarding"""
    __tablename__ = "ticket_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    capabilities = relationship("Capability", back_populates="ticket_group")


class Capability(Base):
    """A deliverable set up for a customer; belongs to at most one ticket group"""
    __tablename__ = "capabilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    ticket_group_id = Column(Integer, ForeignKey("ticket_groups.id"), nullable=True, index=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    ticket_group = relationship("TicketGroup", back_populates="capabilities")
    items = relationship("CapabilityItem", back_populates="capability")


class CapabilityItem(Base):
    """Line item listed in a capability's child ticket description"""
    __tablename__ = "capability_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    capability_id = Column(Integer, ForeignKey("capabilities.id"), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    item_type = Column(Enum(ItemType), default=ItemType.STANDARD, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    capability = relationship("Capability", back_populates="items")


class SaleType(Base):
    """Commercial package (e.g. "BYM") that selects capabilities via the matrix"""
    __tablename__ = "sale_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class CapabilityMatrixEntry(Base):
    """SaleType x Capability cell"""
    __tablename__ = "capability_matrix"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_type_id = Column(Integer, ForeignKey("sale_types.id"), nullable=False)
    capability_id = Column(Integer, ForeignKey("capabilities.id"), nullable=False)
    enabled = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_matrix_sale_type_capability", "sale_type_id", "capability_id", unique=True),
    )
