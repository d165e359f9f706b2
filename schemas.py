from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import IncomeType

# Raw amounts stay unparsed until money.parse_amount; forms send strings,
# stores send numbers.
RawAmount = Optional[Union[int, Decimal, float, str]]


class IncomeIn(BaseModel):
    amount: RawAmount = None
    type: IncomeType = IncomeType.salary
    source: Optional[str] = Field(default=None, max_length=120)
    due_date: Optional[date] = None


class IncludeBorrowedIn(BaseModel):
    include: bool


class CategoryIn(BaseModel):
    name: Optional[str] = None
    amount: RawAmount = None
    parent_id: Optional[int] = None
    id: Optional[int] = None


class ExpenseIn(BaseModel):
    category_id: Optional[int] = None
    amount: RawAmount = None
    description: Optional[str] = Field(default=None, max_length=200)
    created_at: Optional[datetime] = None


class ExpenseMoveIn(BaseModel):
    target_category_id: int


class RepaymentIn(BaseModel):
    amount: RawAmount = None
    source: str = Field(..., min_length=1, max_length=120)
    notes: Optional[str] = Field(default=None, max_length=200)


class ProfileIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=200)


class TokenIn(BaseModel):
    user_id: int = Field(..., gt=0)


class IncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_paise: int
    type: IncomeType
    source: Optional[str]
    due_date: Optional[date]
    created_at: datetime


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_paise: int
    parent_id: Optional[int]
    created_at: datetime


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount_paise: int
    description: Optional[str]
    created_at: datetime


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str]
    email: Optional[str]
    profile_image_url: Optional[str]
    include_borrowed_in_budget: bool


class RepaymentOut(BaseModel):
    income_id: int
    source: Optional[str]
    amount_paise: int
    due_date: date
    status: Literal["overdue", "urgent", "upcoming", "future"]
    days: int
