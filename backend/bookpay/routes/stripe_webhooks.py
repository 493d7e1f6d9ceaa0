"""
Stripe Webhook Endpoint

Receives Stripe payment events and hands them to the webhook reconciler.

Key Features:
- Webhook signature verification against every configured secret
- Idempotent event processing through the webhook ledger
- 202 for event types without a handler so Stripe stops retrying them
- 409 while another delivery of the same event is still being processed
"""

import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
import stripe

from ..api.dependencies.services import (
    get_credential_resolver,
    get_stripe_client,
    get_webhook_reconciler,
)
from ..core.config import settings
from ..integrations.stripe_client import StripeClient
from ..schemas.payment_schemas import WebhookResponse
from ..services.credential_resolver import CredentialResolver
from ..services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations/stripepayment", tags=["stripe-webhooks"])


def collect_webhook_secrets(credential_resolver: CredentialResolver) -> List[str]:
    """Environment secrets first, then the manually configured platform secret."""
    secrets = list(settings.webhook_secrets)
    platform = credential_resolver.get_platform_credential()
    if platform is not None and platform.webhook_secret is not None:
        platform_secret = platform.webhook_secret.get_secret_value()
        if platform_secret and platform_secret not in secrets:
            secrets.append(platform_secret)
    return secrets


def verify_signature(
    stripe_client: StripeClient, payload: bytes, signature: str, secrets: List[str]
) -> bool:
    for secret in secrets:
        try:
            stripe_client.construct_event(payload, signature, secret)
            return True
        except stripe.SignatureVerificationError:
            continue
    return False


@router.post("/webhook", response_model=WebhookResponse)
async def handle_payment_webhook(
    request: Request,
    response: Response,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
    stripe_client: StripeClient = Depends(get_stripe_client),
    credential_resolver: CredentialResolver = Depends(get_credential_resolver),
) -> WebhookResponse:
    """
    Handle Stripe payment webhook events.

    Processes:
    - checkout.session.completed / async_payment_succeeded / async_payment_failed / expired
    - payment_intent.succeeded / payment_intent.payment_failed
    - setup_intent.succeeded

    Raises:
        HTTPException: 400 for unsigned, unverifiable or non-object bodies,
            500 when no secret is configured or processing fails
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.warning("Missing Stripe signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header"
        )

    secrets = await asyncio.to_thread(collect_webhook_secrets, credential_resolver)
    if not secrets:
        logger.error("No Stripe webhook secret configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    try:
        event = json.loads(payload.decode("utf-8"))
    except ValueError:
        event = None
    if not isinstance(event, dict):
        logger.warning("Malformed Stripe webhook payload")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if not verify_signature(stripe_client, payload, signature, secrets):
        logger.warning("Invalid Stripe webhook signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature"
        )

    event_type = event.get("type", "")
    logger.info(f"Processing Stripe webhook event: {event_type} ({event.get('id')})")

    try:
        outcome = await asyncio.to_thread(reconciler.handle_event, event, dict(request.headers))
    except Exception as e:
        logger.error(f"Error processing Stripe webhook {event.get('id')}: {type(e).__name__}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process webhook"
        )

    if outcome.status == "unhandled":
        response.status_code = status.HTTP_202_ACCEPTED
    elif outcome.status == "in_progress":
        response.status_code = status.HTTP_409_CONFLICT
    return WebhookResponse(status=outcome.status, event_type=event_type, message=outcome.message)
