"""
Competency (accounting month)

A competency is the month/year a transaction or budget is booked against,
independent of the calendar date it was recorded on. Its canonical text form
is `MM/YYYY`.
"""

import calendar
from datetime import date
from functools import total_ordering
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator


@total_ordering
class Competency(BaseModel):
    """
    A calendar month, with no day or timezone component.

    Accepts either a mapping with `month`/`year` or the `MM/YYYY` text when
    used as a field type, and serializes back to the text form.
    """
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1, le=9999)

    @model_validator(mode='before')
    @classmethod
    def accept_text(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._split_text(data)
        return data

    @staticmethod
    def _split_text(text: str) -> dict:
        parts = text.strip().split("/")
        if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
            raise ValueError(f"Competency must be MM/YYYY, got {text!r}")
        return {"month": int(parts[0]), "year": int(parts[1])}

    @model_serializer
    def to_text(self) -> str:
        return str(self)

    @classmethod
    def parse(cls, text: str) -> "Competency":
        return cls.model_validate(text)

    @classmethod
    def from_date(cls, value: date) -> "Competency":
        return cls(month=value.month, year=value.year)

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year:04d}"

    def __lt__(self, other: "Competency") -> bool:
        if not isinstance(other, Competency):
            return NotImplemented
        return (self.year, self.month) < (other.year, other.month)

    def __hash__(self) -> int:
        return hash((self.year, self.month))

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    def day(self, day_of_month: int) -> date:
        """Date in this month, clamping days past the month end to its last day."""
        return date(self.year, self.month, min(day_of_month, self.days_in_month))

    def shift(self, months: int) -> "Competency":
        index = self.year * 12 + (self.month - 1) + months
        return Competency(month=index % 12 + 1, year=index // 12)
