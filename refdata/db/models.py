"""
ORM models for the reference-data tables.

Every time-series table carries a unique constraint on its natural key; the
import pipeline's ``ON CONFLICT`` upserts target exactly those columns.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from refdata.db.session import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigId = BigInteger().with_variant(Integer, "sqlite")


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Stock(TimestampMixin, Base):
    """Listed company; parent of the symbol-keyed time series."""
    __tablename__ = "stocks"

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    exchange = Column(String(100), nullable=True)
    industry = Column(String(100), nullable=True)


class EpsRecord(TimestampMixin, Base):
    __tablename__ = "eps_records"
    __table_args__ = (UniqueConstraint("symbol", "report_date", name="uq_eps_records_symbol_report_date"),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), ForeignKey("stocks.symbol", ondelete="CASCADE"), index=True, nullable=False)
    report_date = Column(Date, nullable=False)
    eps = Column(Float, nullable=True)
    eps_nganh = Column(Float, nullable=True)
    eps_rate = Column(Float, nullable=True)


class PeRecord(TimestampMixin, Base):
    __tablename__ = "pe_records"
    __table_args__ = (UniqueConstraint("symbol", "report_date", name="uq_pe_records_symbol_report_date"),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), ForeignKey("stocks.symbol", ondelete="CASCADE"), index=True, nullable=False)
    report_date = Column(Date, nullable=False)
    pe = Column(Float, nullable=True)
    pe_nganh = Column(Float, nullable=True)
    pe_rate = Column(Float, nullable=True)


class RoaRoeRecord(TimestampMixin, Base):
    __tablename__ = "roa_roe_records"
    __table_args__ = (UniqueConstraint("symbol", "report_date", name="uq_roa_roe_records_symbol_report_date"),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), ForeignKey("stocks.symbol", ondelete="CASCADE"), index=True, nullable=False)
    report_date = Column(Date, nullable=False)
    roa = Column(Float, nullable=True)
    roe = Column(Float, nullable=True)
    roe_nganh = Column(Float, nullable=True)
    roe_nganh_rate = Column(Float, nullable=True)
    roa_nganh = Column(Float, nullable=True)


class FinancialRatioRecord(TimestampMixin, Base):
    __tablename__ = "financial_ratio_records"
    __table_args__ = (
        UniqueConstraint("symbol", "report_date", name="uq_financial_ratio_records_symbol_report_date"),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), ForeignKey("stocks.symbol", ondelete="CASCADE"), index=True, nullable=False)
    report_date = Column(Date, nullable=False)
    debt_equity = Column(Float, nullable=True)
    assets_equity = Column(Float, nullable=True)
    debt_equity_pct = Column(Float, nullable=True)


class CurrencyPrice(TimestampMixin, Base):
    """Daily FX quote; ``symbol`` is a currency pair, not a stock."""
    __tablename__ = "currency_prices"
    __table_args__ = (UniqueConstraint("symbol", "date", name="uq_currency_prices_symbol_date"),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    symbol = Column(String(20), index=True, nullable=False)
    date = Column(Date, nullable=False)
    open = Column(Numeric(18, 6), nullable=True)
    high = Column(Numeric(18, 6), nullable=True)
    low = Column(Numeric(18, 6), nullable=True)
    close = Column(Numeric(18, 6), nullable=True)
    trend_q = Column(Numeric(18, 6), nullable=True)
    fq = Column(Numeric(18, 6), nullable=True)


class StockQIndex(TimestampMixin, Base):
    __tablename__ = "stock_qindices"
    __table_args__ = (UniqueConstraint("stock_id", "date", name="uq_stock_qindices_stock_id_date"),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    stock_id = Column(BigId, ForeignKey("stocks.id", ondelete="CASCADE"), index=True, nullable=False)
    date = Column(Date, nullable=False)
    open = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    trend_q = Column(Float, nullable=True)
    fq = Column(Float, nullable=True)
    qv1 = Column(Float, nullable=True)
    band_down = Column(Float, nullable=True)
    band_up = Column(Float, nullable=True)
