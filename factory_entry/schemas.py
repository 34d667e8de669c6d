"""Pydantic models for the entry forms and the payload they forward."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import zip_longest
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


_QUANTITY_RE = re.compile(r"^-?\d*\.?\d*$")
_DATE_FORMAT = "%d-%m-%Y"


@dataclass(frozen=True)
class EntryForm:
    slug: str
    title: str
    path: str
    description: str
    dc_fields: bool = False


ENTRY_FORMS: Dict[str, EntryForm] = {
    form.slug: form
    for form in (
        EntryForm("receipt", "Material Receipt", "/receipt", "Record material received into stores."),
        EntryForm("issuance", "Material Issuance", "/issuance", "Record material issued from stores."),
        EntryForm("production", "Production Entry", "/production-entry", "Record finished production."),
        EntryForm(
            "dc-entry",
            "DC Entry",
            "/dc-entry",
            "Record delivery challan entries.",
            dc_fields=True,
        ),
    )
}


class SubmissionInvalid(ValueError):
    """Raised with one readable message per problem in a submitted form."""

    def __init__(self, messages: List[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = messages


class SubmissionItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_name: str = Field(alias="productName")
    quantity: str
    notes: str = ""

    @field_validator("product_name")
    @classmethod
    def _require_product(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please select a Product")
        return value

    @field_validator("quantity")
    @classmethod
    def _validate_quantity(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please enter a Quantity")
        if not _QUANTITY_RE.match(value) or not any(ch.isdigit() for ch in value):
            raise ValueError(f"Quantity must be a number, got {value!r}")
        return value


class SubmissionHeader(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    form_type: str = Field(alias="formType")
    user: str
    entry_date: str = Field(alias="date")
    bill_number: Optional[str] = Field(default=None, alias="billNumber")
    dc_number: Optional[str] = Field(default=None, alias="dcNumber")
    submitted_at: str = Field(alias="submittedAt")

    @field_validator("form_type")
    @classmethod
    def _known_form(cls, value: str) -> str:
        if value not in ENTRY_FORMS:
            raise ValueError(f"Unknown form type: {value}")
        return value

    @field_validator("user")
    @classmethod
    def _require_user(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please select a User")
        return value

    @field_validator("entry_date")
    @classmethod
    def _validate_date(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please select a Date")
        try:
            datetime.strptime(value, _DATE_FORMAT)
        except ValueError:
            raise ValueError(f"Date must be DD-MM-YYYY, got {value!r}") from None
        return value


class FormSubmission(BaseModel):
    header: SubmissionHeader
    items: List[SubmissionItem] = Field(min_length=1)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _normalize_date(raw: str) -> str:
    # Browsers post <input type="date"> as YYYY-MM-DD.
    raw = raw.strip()
    try:
        return datetime.strptime(raw, "%Y-%m-%d").strftime(_DATE_FORMAT)
    except ValueError:
        return raw


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _describe_error(error: Mapping[str, Any]) -> str:
    loc = error.get("loc", ())
    prefix = ""
    if len(loc) >= 2 and loc[0] == "items" and isinstance(loc[1], int):
        prefix = f"Item {loc[1] + 1}: "
    if loc == ("items",):
        return "Add at least one item"
    cause = (error.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        return f"{prefix}{cause}"
    field = loc[-1] if loc else "form"
    return f"{prefix}{field}: {error.get('msg')}"


def build_submission(
    form_type: str,
    form: Any,
    *,
    submitted_at: Optional[datetime] = None,
) -> FormSubmission:
    """Build a :class:`FormSubmission` from posted form fields.

    ``form`` is a werkzeug ``MultiDict``; product rows arrive as repeated
    ``productName``/``quantity``/``notes`` fields and fully blank rows are
    ignored.
    """

    entry_form = ENTRY_FORMS.get(form_type)
    if entry_form is None:
        raise SubmissionInvalid([f"Unknown form type: {form_type}"])
    submitted_at = submitted_at or datetime.now(timezone.utc)

    rows = zip_longest(
        form.getlist("productName"),
        form.getlist("quantity"),
        form.getlist("notes"),
        fillvalue="",
    )
    items = [
        {"productName": name, "quantity": quantity, "notes": (notes or "").strip()}
        for name, quantity, notes in rows
        if any((value or "").strip() for value in (name, quantity, notes))
    ]
    header: Dict[str, Any] = {
        "formType": form_type,
        "user": form.get("user", ""),
        "date": _normalize_date(form.get("date", "")),
        "submittedAt": submitted_at.isoformat(),
    }
    if entry_form.dc_fields:
        header["billNumber"] = _optional_text(form.get("billNumber"))
        header["dcNumber"] = _optional_text(form.get("dcNumber"))

    try:
        return FormSubmission(header=header, items=items)
    except ValidationError as exc:
        raise SubmissionInvalid([_describe_error(error) for error in exc.errors()]) from exc


__all__ = [
    "ENTRY_FORMS",
    "EntryForm",
    "FormSubmission",
    "SubmissionHeader",
    "SubmissionInvalid",
    "SubmissionItem",
    "build_submission",
]
