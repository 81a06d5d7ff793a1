"""
Database models for exStrat Alerts

SQLAlchemy 2.0 models with full type hints. Only the part of the portfolio
schema that the alerts pipeline reads or writes is modelled here.
"""

from datetime import datetime, UTC
from typing import Optional, List

from sqlalchemy import (
    String,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from src.core.enums import StrategyStatus, StepState, TargetType, BeforeTPType


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


# Prices are stored as NUMERIC but handled as float in the pipeline
PriceColumn = Numeric(30, 12, asdecimal=False)

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
ChannelsColumn = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def default_notification_channels() -> dict:
    return {"email": True, "push": False}


# ===========================
# REFERENCE DATA
# ===========================


class User(Base):
    """
    User model

    Only the fields the alert emails need.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False, comment="Login and notification email"
    )
    first_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Display name used in emails"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    strategies: Mapped[List["Strategy"]] = relationship(back_populates="user")

    @property
    def display_name(self) -> str:
        """Name for email greetings (falls back to the local part of the email)"""
        return self.first_name or self.email.split("@")[0]

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Token(Base):
    """
    Token reference data

    Created lazily the first time a token is encountered (search, transaction).
    """

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cmc_id: Mapped[int] = mapped_column(
        Integer, unique=True, index=True, nullable=False, comment="CoinMarketCap ID"
    )
    symbol: Mapped[str] = mapped_column(
        String(20), index=True, nullable=False, comment="Ticker (e.g., 'BTC')"
    )
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Token(cmc_id={self.cmc_id}, symbol={self.symbol})>"


class Transaction(Base):
    """
    Portfolio transaction

    The alerts pipeline only uses it to resolve a strategy's asset symbol to
    a CoinMarketCap ID for strategies created before token_cmc_id existed.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    cmc_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quantity: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (Index("ix_transactions_user_symbol", "user_id", "symbol"),)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, user_id={self.user_id}, symbol={self.symbol})>"


# ===========================
# STRATEGIES (step alerts)
# ===========================


class Strategy(Base):
    """
    Take-profit strategy

    A user's step-wise sell plan for one asset.
    """

    __tablename__ = "strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    asset: Mapped[str] = mapped_column(
        String(20), index=True, nullable=False, comment="Asset symbol (e.g., 'BTC')"
    )
    token_cmc_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="CoinMarketCap ID captured at creation (NULL for legacy rows)",
    )
    status: Mapped[str] = mapped_column(
        String(20), default=StrategyStatus.ACTIVE.value, index=True, nullable=False
    )
    reference_price: Mapped[float] = mapped_column(PriceColumn, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="strategies")
    steps: Mapped[List["StrategyStep"]] = relationship(
        back_populates="strategy",
        cascade="all, delete-orphan",
        order_by="StrategyStep.target_price",
    )
    strategy_alert: Mapped[Optional["StrategyAlert"]] = relationship(
        back_populates="strategy", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Strategy(id={self.id}, asset={self.asset}, status={self.status})>"


class StrategyStep(Base):
    """
    Strategy step (one take-profit level)

    target_price is absolute and computed once from target_type/target_value.
    """

    __tablename__ = "strategy_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("strategies.id", ondelete="CASCADE"), index=True, nullable=False
    )
    target_type: Mapped[str] = mapped_column(
        String(30), default=TargetType.EXACT_PRICE.value, nullable=False
    )
    target_value: Mapped[float] = mapped_column(
        PriceColumn, nullable=False, comment="Exact price or % above reference price"
    )
    target_price: Mapped[float] = mapped_column(PriceColumn, nullable=False)
    sell_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, comment="Fraction of the holding to sell (0-100)"
    )
    state: Mapped[str] = mapped_column(
        String(20), default=StepState.PENDING.value, index=True, nullable=False
    )
    triggered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    strategy: Mapped["Strategy"] = relationship(back_populates="steps")
    alert: Mapped[Optional["StepAlert"]] = relationship(
        back_populates="step", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<StrategyStep(id={self.id}, target_price={self.target_price}, state={self.state})>"


class StrategyAlert(Base):
    """
    Strategy-level alert switch and channel selection
    """

    __tablename__ = "strategy_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("strategies.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notification_channels: Mapped[dict] = mapped_column(
        ChannelsColumn, default=default_notification_channels, nullable=False
    )

    strategy: Mapped["Strategy"] = relationship(back_populates="strategy_alert")

    @property
    def email_enabled(self) -> bool:
        return bool((self.notification_channels or {}).get("email"))

    def __repr__(self) -> str:
        return f"<StrategyAlert(strategy_id={self.strategy_id}, is_active={self.is_active})>"


class StepAlert(Base):
    """
    Per-step alert rules

    Two independent rules (beforeTP, tpReached). A non-NULL *_email_sent_at
    disables the rule permanently for this step.
    """

    __tablename__ = "step_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    step_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("strategy_steps.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    before_tp_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    before_tp_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tp_reached_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    before_tp_email_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tp_reached_email_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    step: Mapped["StrategyStep"] = relationship(back_populates="alert")

    def __repr__(self) -> str:
        return f"<StepAlert(id={self.id}, step_id={self.step_id})>"


# ===========================
# HOLDING ALERTS (token / TP alerts)
# ===========================


class AlertConfiguration(Base):
    """
    Per-forecast alert configuration (holding-based alerts)
    """

    __tablename__ = "alert_configurations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    forecast_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notification_channels: Mapped[dict] = mapped_column(
        ChannelsColumn, default=default_notification_channels, nullable=False
    )

    token_alerts: Mapped[List["TokenAlert"]] = relationship(
        back_populates="configuration", cascade="all, delete-orphan"
    )

    @property
    def email_enabled(self) -> bool:
        return bool((self.notification_channels or {}).get("email"))


class TokenAlert(Base):
    """
    Alert group for one holding
    """

    __tablename__ = "token_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_configuration_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("alert_configurations.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    holding_id: Mapped[str] = mapped_column(String(64), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    strategy_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("strategies.id", ondelete="SET NULL"), nullable=True
    )
    number_of_targets: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    configuration: Mapped["AlertConfiguration"] = relationship(back_populates="token_alerts")
    tp_alerts: Mapped[List["TPAlert"]] = relationship(
        back_populates="token_alert",
        cascade="all, delete-orphan",
        order_by="TPAlert.tp_order",
    )


class TPAlert(Base):
    """
    Per-TP-level alert rules of a holding

    Same two rules as StepAlert, with the target price stored on the row.
    """

    __tablename__ = "tp_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_alert_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("token_alerts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    tp_order: Mapped[int] = mapped_column(Integer, nullable=False)
    target_price: Mapped[float] = mapped_column(PriceColumn, nullable=False)
    sell_quantity: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    projected_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    remaining_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    before_tp_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    before_tp_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    before_tp_type: Mapped[str] = mapped_column(
        String(20), default=BeforeTPType.PERCENTAGE.value, nullable=False
    )
    tp_reached_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    before_tp_email_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tp_reached_email_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    token_alert: Mapped["TokenAlert"] = relationship(back_populates="tp_alerts")

    def __repr__(self) -> str:
        return f"<TPAlert(id={self.id}, tp_order={self.tp_order}, target_price={self.target_price})>"
