"""
Database Models (SQLAlchemy ORM)
Insert-only history tables. Only users.selected_basket and
rebalancing_transaction.status are ever updated.
"""

import enum

from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SQLEnum, Float, ForeignKey, Index,
    Integer, JSON, String, Text,
)
from sqlalchemy.orm import relationship

from basket_yield.infrastructure.db.database import Base
from basket_yield.utils.time import to_db, utc_now


def now_utc_naive():
    return to_db(utc_now())


class RebalanceStatusEnum(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AssetYieldModel(Base):
    """Per-asset yield sample, one row per computation"""
    __tablename__ = "asset_yield"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False, index=True)
    apr_basis_points = Column(Integer, nullable=False)
    volatility = Column(Float, nullable=False, default=0.0)
    source = Column(String(20), nullable=False, default="pyth")
    source_timestamp = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        Index("ix_asset_yield_symbol_ts", "symbol", "source_timestamp"),
    )


class BasketHistoryModel(Base):
    """Basket yield snapshot per cycle"""
    __tablename__ = "basket_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    basket_id = Column(Integer, nullable=False, index=True)
    basket_name = Column(String(50), nullable=False)
    average_yield_bp = Column(Integer, nullable=False)
    weighted_yield_bp = Column(Integer, nullable=False)
    asset_yields = Column(JSON, nullable=False, default=list)
    computed_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index("ix_basket_history_basket_computed", "basket_id", "computed_at"),
    )


class UserModel(Base):
    """Registered wallet and its basket of record"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(64), nullable=False, unique=True, index=True)
    selected_basket = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive, onupdate=now_utc_naive)

    transactions = relationship("RebalancingTransactionModel", back_populates="user")


class RecommendationModel(Base):
    """AI recommendation history (append-only)"""
    __tablename__ = "recommendation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    recommended_basket = Column(Integer, nullable=False)
    confidence_score = Column(Integer, nullable=False)
    reasoning = Column(Text, nullable=False)
    expected_yield_bp = Column(Integer, nullable=False)
    risk_score = Column(Integer, nullable=False)
    is_fallback = Column(Boolean, nullable=False, default=False)
    produced_at = Column(DateTime, nullable=False, index=True)


class RebalancingTransactionModel(Base):
    """Basket switch executed (or attempted) for a user"""
    __tablename__ = "rebalancing_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    from_basket = Column(Integer, nullable=False)
    to_basket = Column(Integer, nullable=False)
    status = Column(
        SQLEnum(RebalanceStatusEnum, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RebalanceStatusEnum.PENDING,
    )
    confidence = Column(Integer, nullable=False, default=0)
    tx_reference = Column(String(128), nullable=True)
    gas_used = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("UserModel", back_populates="transactions")


class AuditEventModel(Base):
    """Structured audit trail for decisions and outcomes"""
    __tablename__ = "audit_event"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(40), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    basket_id = Column(Integer, nullable=True)
    data_hash = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive, index=True)
