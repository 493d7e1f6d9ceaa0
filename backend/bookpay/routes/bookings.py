"""Booking creation endpoint."""

import logging

from fastapi import APIRouter, Depends, status

from ..api.dependencies.services import get_booking_service
from ..core.exceptions import DomainException
from ..schemas.booking_schemas import BookingCreate, BookingCreateResponse
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """
    Create a booking and, for paid event types, its payment.

    Raises:
        HTTPException: 400 when payment is not connected, 402 when the payment
            could not be created, 404 for unknown event types, 409 on conflicts
    """
    try:
        return booking_service.create_booking(data)
    except DomainException as exc:
        logger.info(f"Booking creation rejected: {exc.code}")
        raise exc.to_http_exception()
