"""Receipt lookup, verification and sign-off FastAPI routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from Bookings.receipts import (
    ReceiptSignOff,
    ReceiptVerificationRequest,
    is_valid_uuid,
    parse_verification_response,
)
from Database.deps import get_rpc
from Database.rpc import BackendRPC
from Users.admin import AdminUser

from .models import MessageResponse, ReceiptDetailsResponse, ReceiptVerificationResponse
from .security import get_current_admin
from .utils import _execute, _parse_id

logger = logging.getLogger(__name__)

RECEIPT = "receipt"

# mount api router
receipt_router = APIRouter()


@receipt_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the receipt service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Receipt service is healthy")


@receipt_router.post("/verify", response_model=ReceiptVerificationResponse)
async def verify_receipt(
    request: ReceiptVerificationRequest, rpc: BackendRPC = Depends(get_rpc)
) -> ReceiptVerificationResponse:
    """
    Check that a receipt exists and matches its booking.

    The answer of the backend is normalized: an unreadable payload or a
    missing receipt yields ``valid=False`` rather than an error.

    Raises:
        HTTPException: 400 when the receipt id is not a UUID.
    """

    receipt_id = request.receipt_id.strip()
    if not is_valid_uuid(receipt_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid receipt ID format. Please enter a valid UUID.",
        )
    booking_id = request.booking_id.strip() if request.booking_id and request.booking_id.strip() else None

    data = await _execute(
        lambda: rpc.verify_receipt(receipt_id, booking_id),
        "Failed to verify receipt",
        "Receipt verification error",
        {"receipt_id": receipt_id},
    )
    verification = parse_verification_response(data)
    logger.info("Receipt verified", extra={"receipt_id": receipt_id, "valid": verification.valid})
    return ReceiptVerificationResponse(status=status.HTTP_200_OK, verification=verification)


@receipt_router.get("/{receipt_id}", response_model=ReceiptDetailsResponse)
async def get_receipt_details(receipt_id: str, rpc: BackendRPC = Depends(get_rpc)) -> ReceiptDetailsResponse:
    guid = _parse_id(receipt_id, logger, RECEIPT)
    data = await _execute(
        lambda: rpc.get_receipt_details(guid),
        "Unable to retrieve receipt due to an internal error.",
        "Failed to fetch receipt details",
        {"receipt_id": receipt_id},
    )
    if isinstance(data, list):
        data = data[0] if data else None
    if not data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No receipt found with id {receipt_id}",
        )
    return ReceiptDetailsResponse(status=status.HTTP_200_OK, receipt=data)


@receipt_router.post("/{receipt_id}/sign-off", response_model=ReceiptVerificationResponse)
async def sign_off_receipt(
    receipt_id: str,
    sign_off: ReceiptSignOff,
    rpc: BackendRPC = Depends(get_rpc),
    admin: AdminUser = Depends(get_current_admin),
) -> ReceiptVerificationResponse:
    """Mark a receipt as checked by the admin at the counter."""

    guid = _parse_id(receipt_id, logger, RECEIPT)
    data = await _execute(
        lambda: rpc.sign_off_receipt(guid, admin.id, sign_off.notes),
        "Failed to sign off receipt",
        "Receipt sign-off error",
        {"receipt_id": receipt_id, "admin_id": str(admin.id)},
    )
    verification = parse_verification_response(data)
    if verification.valid:
        logger.info("Receipt signed off", extra={"receipt_id": receipt_id, "admin_id": str(admin.id)})
    return ReceiptVerificationResponse(status=status.HTTP_200_OK, verification=verification)
