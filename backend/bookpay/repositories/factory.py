# backend/bookpay/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_reference_repository import BookingReferenceRepository
    from .booking_repository import BookingRepository
    from .credential_repository import AppConfigRepository, CredentialRepository
    from .event_type_repository import EventTypeRepository
    from .payment_repository import PaymentRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking state changes."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        """Create repository for payment records."""
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_credential_repository(db: Session) -> "CredentialRepository":
        from .credential_repository import CredentialRepository

        return CredentialRepository(db)

    @staticmethod
    def create_app_config_repository(db: Session) -> "AppConfigRepository":
        from .credential_repository import AppConfigRepository

        return AppConfigRepository(db)

    @staticmethod
    def create_event_type_repository(db: Session) -> "EventTypeRepository":
        from .event_type_repository import EventTypeRepository

        return EventTypeRepository(db)

    @staticmethod
    def create_booking_reference_repository(db: Session) -> "BookingReferenceRepository":
        from .booking_reference_repository import BookingReferenceRepository

        return BookingReferenceRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        """Create repository for the webhook ledger."""
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)
