from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from src.applicants.schemas import TransactionEntry

class TransactionType(str, Enum):
    PAYMENT = "PAYMENT"
    EXPENSE = "EXPENSE"
    WITHDRAWAL = "WITHDRAWAL"

class TransactionCreate(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    applicant_id: Optional[int] = None
    location_id: Optional[int] = None

class TransactionList(BaseModel):
    transactions: List[TransactionEntry]
    total: int
    page: int
    per_page: int

class AccountingSummary(BaseModel):
    """Cash position for a period"""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    location_id: Optional[int] = None
    income: Decimal
    expenses: Decimal
    withdrawals: Decimal
    net: Decimal
    outstanding: Decimal
    transaction_count: int

# Dashboard
class DashboardOverview(BaseModel):
    total_applicants: int
    total_revenue: Decimal
    passed_count: int
    failed_count: int
    others_count: int

class ScheduledExam(BaseModel):
    id: int
    full_name: str
    exam_location: Optional[str] = None
    exam_time: Optional[str] = None
    status: str

    class Config:
        from_attributes = True

class ExamDay(BaseModel):
    date: date
    count: int
    exams: List[ScheduledExam]

class TransportDay(BaseModel):
    """Passengers travelling on one day, grouped by route"""
    date: date
    total_passengers: int
    active_buses: int
    routes: Dict[str, int]

class TrendPoint(BaseModel):
    day: str
    applicants: int

class LocationCount(BaseModel):
    name: str
    value: int

class RecentActivity(BaseModel):
    id: int
    action: str
    details: Optional[str] = None
    applicant_name: Optional[str] = None
    staff_name: Optional[str] = None
    timestamp: Optional[datetime] = None

class DashboardData(BaseModel):
    """Dashboard data response"""
    overview: DashboardOverview
    exam_schedule: ExamDay
    transport: TransportDay
    trend: List[TrendPoint]
    locations: List[LocationCount]
    recent_activity: List[RecentActivity]
    last_updated: datetime
