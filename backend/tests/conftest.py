# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets its own in-memory SQLite database, an in-memory Stripe
client and an email sender that records instead of sending.
"""

import os

# Set before any bookpay import so settings never point at a real database.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["STRIPE_FAKE"] = "true"

from datetime import datetime, timedelta, timezone
import json
from typing import Any, Callable, Dict, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bookpay.api.dependencies.database import get_db
from bookpay.api.dependencies.services import get_email_sender, get_stripe_client
from bookpay.core.enums import STRIPE_APP_SLUG, PaymentOption
from bookpay.database import init_db
from bookpay.integrations import FakeStripeClient
from bookpay.main import fastapi_app as app
from bookpay.models import AppConfig, Booking, Credential, EventType, Payment, Team, User
from bookpay.schemas.booking_schemas import BookingCreate
from bookpay.services.booking_confirmation_service import BookingConfirmationService
from bookpay.services.booking_service import BookingService
from bookpay.services.checkout_service import CheckoutService
from bookpay.services.credential_resolver import CredentialResolver
from bookpay.services.notification_service import NotificationService
from bookpay.services.payment_return_service import PaymentReturnService
from bookpay.services.webhook_reconciler import WebhookReconciler
from _helpers import (
    ADMIN_TOKEN,
    ORGANIZER_ACCOUNT,
    TEAM_ACCOUNT,
    WEBHOOK_SECRET,
    RecordingEmailSender,
    sign_payload,
)


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# COLLABORATORS
# ============================================================================


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def notification_service(email_sender) -> NotificationService:
    return NotificationService(email_sender)


@pytest.fixture
def credential_resolver(db) -> CredentialResolver:
    return CredentialResolver(db)


@pytest.fixture
def checkout_service(db, fake_stripe, credential_resolver) -> CheckoutService:
    return CheckoutService(db, fake_stripe, credential_resolver)


@pytest.fixture
def confirmation_service(db, notification_service) -> BookingConfirmationService:
    return BookingConfirmationService(db, notification_service)


@pytest.fixture
def booking_service(
    db, checkout_service, confirmation_service, notification_service
) -> BookingService:
    return BookingService(db, checkout_service, confirmation_service, notification_service)


@pytest.fixture
def reconciler(db, confirmation_service, checkout_service) -> WebhookReconciler:
    return WebhookReconciler(db, confirmation_service, checkout_service)


@pytest.fixture
def return_service(
    db, fake_stripe, confirmation_service, checkout_service, credential_resolver
) -> PaymentReturnService:
    return PaymentReturnService(
        db, fake_stripe, confirmation_service, checkout_service, credential_resolver
    )


# ============================================================================
# SEED DATA
# ============================================================================


@pytest.fixture
def team(db) -> Team:
    team = Team(slug="acme", name="Acme")
    db.add(team)
    db.commit()
    return team


@pytest.fixture
def organizer(db) -> User:
    user = User(email="organizer@example.com", name="Olive Organizer", username="olive")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def organizer_credential(db, organizer) -> Credential:
    credential = Credential(
        user_id=organizer.id,
        key={
            "stripe_user_id": ORGANIZER_ACCOUNT,
            "stripe_publishable_key": "pk_test_organizer",
            "default_currency": "usd",
        },
    )
    db.add(credential)
    db.commit()
    return credential


@pytest.fixture
def team_credential(db, team) -> Credential:
    credential = Credential(
        team_id=team.id,
        key={"stripe_user_id": TEAM_ACCOUNT, "stripe_publishable_key": "pk_test_team"},
    )
    db.add(credential)
    db.commit()
    return credential


@pytest.fixture
def platform_keys(db) -> AppConfig:
    config = AppConfig(
        slug=STRIPE_APP_SLUG,
        enabled=True,
        keys={
            "client_id": "",
            "client_secret": "sk_test_platform",
            "public_key": "pk_test_platform",
            "webhook_secret": "whsec_from_app_config",
            "payment_fee_percentage": 0.1,
            "payment_fee_fixed": 30,
        },
    )
    db.add(config)
    db.commit()
    return config


@pytest.fixture
def make_event_type(db, organizer) -> Callable[..., EventType]:
    def _make(
        payment_option: PaymentOption = PaymentOption.ON_BOOKING,
        *,
        price: int = 5000,
        **overrides: Any,
    ) -> EventType:
        values: Dict[str, Any] = {
            "title": "Consultation",
            "slug": f"consult-{payment_option.value.lower()}-{price}",
            "length_minutes": 30,
            "owner_id": organizer.id,
            "payment_enabled": price > 0,
            "price": price,
            "currency": "usd",
            "payment_option": payment_option.value,
        }
        values.update(overrides)
        event_type = EventType(**values)
        db.add(event_type)
        db.commit()
        return event_type

    return _make


@pytest.fixture
def slot_start() -> datetime:
    return (datetime.now(timezone.utc) + timedelta(days=3)).replace(
        hour=15, minute=0, second=0, microsecond=0
    )


@pytest.fixture
def book(db, booking_service, slot_start) -> Callable[..., tuple[Booking, Payment]]:
    """Create a paid booking through the service and return (booking, payment)."""

    def _book(event_type: EventType, *, offset_hours: int = 0, **overrides: Any) -> tuple[Booking, Payment]:
        data = BookingCreate(
            event_type_id=event_type.id,
            start_time=slot_start + timedelta(hours=offset_hours),
            attendee_name=overrides.pop("attendee_name", "Bea Booker"),
            attendee_email=overrides.pop("attendee_email", "booker@example.com"),
            **overrides,
        )
        response = booking_service.create_booking(data)
        booking = db.get(Booking, response.id)
        payment = db.get(Payment, response.payment_id) if response.payment_id else None
        return booking, payment

    return _book


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def client(session_factory, fake_stripe, email_sender, monkeypatch) -> TestClient:
    from pydantic import SecretStr

    from bookpay.core.config import settings

    monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(WEBHOOK_SECRET))
    monkeypatch.setattr(settings, "stripe_webhook_secret_connect", SecretStr(""))
    monkeypatch.setattr(settings, "admin_api_token", SecretStr(ADMIN_TOKEN))

    def _override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    previous_overrides = dict(app.dependency_overrides)
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    test_client = TestClient(app, follow_redirects=False)
    yield test_client

    app.dependency_overrides = previous_overrides


@pytest.fixture
def post_webhook(client) -> Callable[..., Any]:
    """POST a signed event to the webhook endpoint."""

    def _post(event: Dict[str, Any], *, secret: str = WEBHOOK_SECRET, signature: Optional[str] = None):
        payload = json.dumps(event)
        headers = {
            "stripe-signature": signature if signature is not None else sign_payload(payload, secret),
            "content-type": "application/json",
        }
        return client.post(
            "/api/integrations/stripepayment/webhook", content=payload, headers=headers
        )

    return _post
