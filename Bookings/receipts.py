'''
Receipt shapes and helpers for reading the backend's verification answers.
'''
import json
import re
from uuid import UUID
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ValidationError

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class Receipt(BaseModel):

    id : UUID
    booking_id : UUID
    user_id : UUID
    receipt_number : str
    amount : float
    payment_method : Optional[str] = None
    payment_status : Optional[str] = None
    receipt_status : Optional[str] = None
    generated_at : Optional[datetime] = None


class ReceiptVerification(BaseModel):

    valid : bool
    message : str
    receipt_id : Optional[str] = None
    receipt_number : Optional[str] = None
    booking_id : Optional[str] = None
    amount : Optional[float] = None
    payment_status : Optional[str] = None
    generated_at : Optional[str] = None
    passenger_name : Optional[str] = None
    route : Optional[str] = None


class ReceiptVerificationRequest(BaseModel):

    receipt_id : str
    booking_id : Optional[str] = None


class ReceiptSignOff(BaseModel):

    notes : Optional[str] = None


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value.strip()))


def parse_verification_response(data: Any) -> ReceiptVerification:
    """
    Normalize whatever ``verify_receipt`` returned into a ReceiptVerification.

    The procedure answers with a JSON object, sometimes serialized as a string.
    Any other shape counts as a receipt that could not be found.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            return ReceiptVerification(valid=False, message="Invalid response format")
        if not isinstance(data, dict):
            return ReceiptVerification(valid=False, message="Invalid response format")
    if isinstance(data, dict):
        try:
            return ReceiptVerification(**data)
        except ValidationError:
            return ReceiptVerification(valid=False, message="Invalid response format")
    return ReceiptVerification(valid=False, message="Receipt not found")
