from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from backend.app.schemas.common import CamelModel


class AccountsBreakdown(CamelModel):
    receivable: Decimal
    payable: Decimal
    total: Decimal


class Period(CamelModel):
    start: datetime
    end: datetime


class SummaryMetadata(CamelModel):
    period: Period
    generated_at: datetime


class KpiSummary(CamelModel):
    total_revenue: Decimal
    total_expense: Decimal
    liquid_profit: Decimal
    overdue_accounts: AccountsBreakdown
    upcoming_accounts: AccountsBreakdown
    metadata: SummaryMetadata
