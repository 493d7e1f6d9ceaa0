"""
Browser return endpoints for hosted checkout.

The booker's browser is sent here by Stripe after checkout. Responses are
redirects to human-readable pages, or JSON errors for malformed requests.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..api.dependencies.auth import require_admin
from ..api.dependencies.services import get_payment_return_service
from ..core.exceptions import DomainException
from ..schemas.payment_schemas import BookingPaymentDebugResponse
from ..services.payment_return_service import PaymentReturnService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/booking", tags=["payment-returns"])


def _parse_booking_id(raw: str) -> Optional[int]:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _bad_request() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Missing booking id or session id", "code": "INVALID_RETURN_PARAMS"},
    )


@router.get("/{booking_id}/payment-success")
def payment_success(
    booking_id: str,
    session_id: Optional[str] = None,
    service: PaymentReturnService = Depends(get_payment_return_service),
):
    """Verify the session with Stripe and finalize the booking."""
    parsed_id = _parse_booking_id(booking_id)
    if parsed_id is None or not session_id:
        return _bad_request()

    try:
        result = service.handle_success_return(parsed_id, session_id)
    except DomainException as exc:
        raise exc.to_http_exception()

    logger.info(f"Payment return for booking {parsed_id}: {result.outcome}")
    return RedirectResponse(result.redirect_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/{booking_id}/payment-cancelled")
def payment_cancelled(
    booking_id: str,
    session_id: Optional[str] = None,
    service: PaymentReturnService = Depends(get_payment_return_service),
):
    """Booker abandoned checkout."""
    parsed_id = _parse_booking_id(booking_id)
    if parsed_id is None or not session_id:
        return _bad_request()

    try:
        result = service.handle_cancel_return(parsed_id, session_id)
    except DomainException as exc:
        raise exc.to_http_exception()

    logger.info(f"Payment cancel return for booking {parsed_id}: {result.outcome}")
    return RedirectResponse(result.redirect_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get(
    "/{booking_id}/payment-debug",
    response_model=BookingPaymentDebugResponse,
    dependencies=[Depends(require_admin)],
)
def payment_debug(
    booking_id: int,
    service: PaymentReturnService = Depends(get_payment_return_service),
) -> BookingPaymentDebugResponse:
    try:
        return service.get_payment_debug(booking_id)
    except DomainException as exc:
        raise exc.to_http_exception()
