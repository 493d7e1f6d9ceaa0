# backend/bookpay/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. The Stripe client and
the email sender are built once per process.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...integrations import FakeStripeClient, StripeClient
from ...services.app_config_service import AppConfigService
from ...services.booking_confirmation_service import BookingConfirmationService
from ...services.booking_service import BookingService
from ...services.checkout_service import CheckoutService
from ...services.credential_resolver import CredentialResolver
from ...services.email import EmailSender, build_email_sender
from ...services.notification_service import NotificationService
from ...services.payment_return_service import PaymentReturnService
from ...services.webhook_reconciler import WebhookReconciler
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_stripe_client() -> StripeClient:
    """Process-wide Stripe client."""
    logger.info(
        "Stripe client selection",
        extra={"environment": settings.environment, "stripe_fake": settings.stripe_fake},
    )
    if settings.stripe_fake:
        return FakeStripeClient()
    return StripeClient(
        platform_secret_key=settings.stripe_secret_key,
        api_version=settings.stripe_api_version,
    )


@lru_cache(maxsize=1)
def get_email_sender() -> EmailSender:
    return build_email_sender()


def get_notification_service(
    email_sender: EmailSender = Depends(get_email_sender),
) -> NotificationService:
    return NotificationService(email_sender)


def get_credential_resolver(db: Session = Depends(get_db)) -> CredentialResolver:
    return CredentialResolver(db)


def get_checkout_service(
    db: Session = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
    credential_resolver: CredentialResolver = Depends(get_credential_resolver),
) -> CheckoutService:
    return CheckoutService(db, stripe_client, credential_resolver)


def get_confirmation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingConfirmationService:
    return BookingConfirmationService(db, notification_service)


def get_webhook_reconciler(
    db: Session = Depends(get_db),
    confirmation_service: BookingConfirmationService = Depends(get_confirmation_service),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> WebhookReconciler:
    return WebhookReconciler(db, confirmation_service, checkout_service)


def get_payment_return_service(
    db: Session = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
    confirmation_service: BookingConfirmationService = Depends(get_confirmation_service),
    checkout_service: CheckoutService = Depends(get_checkout_service),
    credential_resolver: CredentialResolver = Depends(get_credential_resolver),
) -> PaymentReturnService:
    return PaymentReturnService(
        db, stripe_client, confirmation_service, checkout_service, credential_resolver
    )


def get_booking_service(
    db: Session = Depends(get_db),
    checkout_service: CheckoutService = Depends(get_checkout_service),
    confirmation_service: BookingConfirmationService = Depends(get_confirmation_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BookingService:
    return BookingService(db, checkout_service, confirmation_service, notification_service)


def get_app_config_service(db: Session = Depends(get_db)) -> AppConfigService:
    return AppConfigService(db)
