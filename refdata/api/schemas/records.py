"""
Response, create and partial-update models for the record endpoints.

Update models declare every column optional; routers read them with
``model_dump(exclude_unset=True)`` so an omitted field stays untouched while
an explicit ``null`` clears the column.
"""
import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaginationInfo(BaseModel):
    total_items: int
    item_count: int
    items_per_page: int
    total_pages: int
    current_page: int


class RecordListResponse(BaseModel):
    data: List[Dict[str, Any]]
    pagination: PaginationInfo


class _RecordUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StockUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    name: Optional[str] = Field(default=None, max_length=255)
    exchange: Optional[str] = Field(default=None, max_length=100)
    industry: Optional[str] = Field(default=None, max_length=100)


class EpsRecordUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    report_date: Optional[dt.date] = None
    eps: Optional[float] = None
    eps_nganh: Optional[float] = None
    eps_rate: Optional[float] = None


class PeRecordUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    report_date: Optional[dt.date] = None
    pe: Optional[float] = None
    pe_nganh: Optional[float] = None
    pe_rate: Optional[float] = None


class RoaRoeRecordUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    report_date: Optional[dt.date] = None
    roa: Optional[float] = None
    roe: Optional[float] = None
    roe_nganh: Optional[float] = None
    roe_nganh_rate: Optional[float] = None
    roa_nganh: Optional[float] = None


class FinancialRatioRecordUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    report_date: Optional[dt.date] = None
    debt_equity: Optional[float] = None
    assets_equity: Optional[float] = None
    debt_equity_pct: Optional[float] = None


class CurrencyPriceUpdate(_RecordUpdate):
    symbol: Optional[str] = Field(default=None, max_length=20)
    date: Optional[dt.date] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    trend_q: Optional[float] = None
    fq: Optional[float] = None


class StockQIndexUpdate(_RecordUpdate):
    stock_id: Optional[int] = None
    date: Optional[dt.date] = None
    open: Optional[float] = None
    low: Optional[float] = None
    high: Optional[float] = None
    trend_q: Optional[float] = None
    fq: Optional[float] = None
    qv1: Optional[float] = None
    band_down: Optional[float] = None
    band_up: Optional[float] = None


# Create models reuse the update columns with the natural key made mandatory.
class StockCreate(StockUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=255)


class EpsRecordCreate(EpsRecordUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    report_date: dt.date


class PeRecordCreate(PeRecordUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    report_date: dt.date


class RoaRoeRecordCreate(RoaRoeRecordUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    report_date: dt.date


class FinancialRatioRecordCreate(FinancialRatioRecordUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    report_date: dt.date


class CurrencyPriceCreate(CurrencyPriceUpdate):
    symbol: str = Field(min_length=1, max_length=20)
    date: dt.date


class StockQIndexCreate(StockQIndexUpdate):
    stock_id: int
    date: dt.date


UPDATE_MODELS = {
    "stock": StockUpdate,
    "eps": EpsRecordUpdate,
    "pe": PeRecordUpdate,
    "roa_roe": RoaRoeRecordUpdate,
    "financial_ratio": FinancialRatioRecordUpdate,
    "currency_price": CurrencyPriceUpdate,
    "stock_qindex": StockQIndexUpdate,
}

CREATE_MODELS = {
    "stock": StockCreate,
    "eps": EpsRecordCreate,
    "pe": PeRecordCreate,
    "roa_roe": RoaRoeRecordCreate,
    "financial_ratio": FinancialRatioRecordCreate,
    "currency_price": CurrencyPriceCreate,
    "stock_qindex": StockQIndexCreate,
}
