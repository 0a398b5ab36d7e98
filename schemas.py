import re
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
)

from models import PaymentMethod
from money import MAX_AMOUNT, amount_to_cents

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
_DATE_RE = re.compile(DATE_PATTERN)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class LoginIn(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="wrap")
    @classmethod
    def _check_email(cls, value, handler) -> str:
        try:
            return handler(value.strip() if isinstance(value, str) else value)
        except ValidationError as exc:
            raise ValueError("Invalid email address") from exc

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class CategoryIn(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        if len(value) > 50:
            raise ValueError("Category name too long")
        return value


class ExpenseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    date: date
    category_id: int = Field(..., alias="categoryId")
    merchant: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[PaymentMethod] = Field(
        default=None, alias="paymentMethod"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def _require_number(cls, value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError("Amount must be a number")
        return value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("Amount must be greater than 0")
        if value > MAX_AMOUNT:
            raise ValueError("Amount is too large")
        if amount_to_cents(value) <= 0:
            raise ValueError("Amount must be greater than 0")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _check_date(cls, value: object) -> object:
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not _DATE_RE.match(value):
            raise ValueError("Date must be YYYY-MM-DD format")
        return value

    @field_validator("merchant")
    @classmethod
    def _check_merchant(cls, value: Optional[str]) -> Optional[str]:
        value = _clean_optional(value)
        if value and len(value) > 100:
            raise ValueError("Merchant must be at most 100 characters")
        return value

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: Optional[str]) -> Optional[str]:
        value = _clean_optional(value)
        if value and len(value) > 500:
            raise ValueError("Description must be at most 500 characters")
        return value

    @property
    def amount_cents(self) -> int:
        return amount_to_cents(self.amount)
