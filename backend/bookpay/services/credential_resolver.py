"""
Payment credential resolution.

Decides which Stripe account and secret a booking is charged through:

1. An enabled manual platform configuration always wins, even over an
   explicit credential id from the caller.
2. Otherwise the caller's credential hint, then the organizer's own
   connection, then their team's. Each must carry a connected account id.
3. Otherwise the organizer is "not connected".
"""

import logging
from typing import Any, Dict, Optional

from pydantic import SecretStr, ValidationError
from sqlalchemy.orm import Session

from ..core.enums import STRIPE_APP_SLUG
from ..core.exceptions import PaymentNotConnectedException
from ..models.credential import Credential
from ..models.payment import Payment
from ..repositories.factory import RepositoryFactory
from ..schemas.credential_schemas import (
    AppKeys,
    OAuthCredential,
    OAuthStripeKeys,
    PlatformCredential,
    ResolvedCredential,
)
from .base import BaseService

logger = logging.getLogger(__name__)


class CredentialResolver(BaseService):
    """Resolves the effective payment credential for a booking context."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.credential_repository = RepositoryFactory.create_credential_repository(db)
        self.app_config_repository = RepositoryFactory.create_app_config_repository(db)

    def _load_app_keys(self) -> tuple[Optional[AppKeys], bool]:
        config = self.app_config_repository.get_by_slug(STRIPE_APP_SLUG)
        if config is None:
            return None, False
        try:
            return AppKeys.model_validate(config.keys or {}), bool(config.enabled)
        except ValidationError as exc:
            self.logger.warning(f"Ignoring malformed {STRIPE_APP_SLUG} app keys: {exc.error_count()} error(s)")
            return None, bool(config.enabled)

    def get_platform_credential(self) -> Optional[PlatformCredential]:
        """Return the manual platform configuration when it is enabled and valid."""
        keys, enabled = self._load_app_keys()
        if keys is None or not enabled:
            return None
        return PlatformCredential(
            secret_key=SecretStr(keys.client_secret),
            publishable_key=keys.public_key,
            webhook_secret=SecretStr(keys.webhook_secret) if keys.webhook_secret else None,
            client_id=keys.client_id,
            payment_fee_percentage=keys.payment_fee_percentage,
            payment_fee_fixed=keys.payment_fee_fixed,
        )

    def _fee_settings(self) -> Dict[str, Any]:
        keys, _enabled = self._load_app_keys()
        if keys is None:
            return {}
        return {
            "payment_fee_percentage": keys.payment_fee_percentage,
            "payment_fee_fixed": keys.payment_fee_fixed,
        }

    def _parse_oauth(self, credential: Credential) -> Optional[OAuthCredential]:
        try:
            keys = OAuthStripeKeys.model_validate(credential.key or {})
        except ValidationError:
            self.logger.warning(f"Credential {credential.id} has no connected Stripe account, skipping")
            return None
        return OAuthCredential(
            credential_id=credential.id,
            stripe_user_id=keys.stripe_user_id,
            stripe_publishable_key=keys.stripe_publishable_key,
            default_currency=keys.default_currency,
            **self._fee_settings(),
        )

    def _hint_credential(
        self, credential_id: int, user_id: Optional[int], team_id: Optional[int]
    ) -> Optional[Credential]:
        credential = self.credential_repository.get_by_id(credential_id)
        if credential is None or credential.invalid:
            self.logger.warning(f"Credential hint {credential_id} not found or invalid")
            return None
        owned = (user_id is not None and credential.user_id == user_id) or (
            team_id is not None and credential.team_id == team_id
        )
        if not owned:
            self.logger.warning(
                f"Credential hint {credential_id} does not belong to user {user_id} / team {team_id}"
            )
            return None
        return credential

    @BaseService.measure_operation("resolve_credential")
    def resolve(
        self,
        *,
        user_id: Optional[int],
        team_id: Optional[int] = None,
        credential_id: Optional[int] = None,
    ) -> ResolvedCredential:
        platform = self.get_platform_credential()
        if platform is not None:
            if credential_id is not None:
                self.logger.info(
                    f"Manual {STRIPE_APP_SLUG} configuration active, ignoring credential hint {credential_id}"
                )
            return platform

        candidates: list[Optional[Credential]] = []
        if credential_id is not None:
            candidates.append(self._hint_credential(credential_id, user_id, team_id))
        if user_id is not None:
            candidates.append(self.credential_repository.find_for_user(user_id))
        if team_id is not None:
            candidates.append(self.credential_repository.find_for_team(team_id))

        for candidate in candidates:
            if candidate is None:
                continue
            parsed = self._parse_oauth(candidate)
            if parsed is not None:
                return parsed

        self.logger.warning(f"No payment credential for user {user_id} / team {team_id}")
        raise PaymentNotConnectedException(details={"user_id": user_id, "team_id": team_id})

    def credential_for_payment(self, payment: Payment) -> ResolvedCredential:
        """
        Rebuild the credential a payment was created with.

        Payments remember their connected account, so later calls (session
        retrieval, expiry, refunds) go to the same account even if the
        organizer's connection changed since.
        """
        data = payment.data or {}
        stripe_account = data.get("stripeAccount")
        if stripe_account:
            return OAuthCredential(
                credential_id=int(data.get("credentialId") or 0),
                stripe_user_id=stripe_account,
                stripe_publishable_key=data.get("stripe_publishable_key") or "",
                **self._fee_settings(),
            )
        platform = self.get_platform_credential()
        if platform is None:
            raise PaymentNotConnectedException(details={"payment_id": payment.id})
        return platform
