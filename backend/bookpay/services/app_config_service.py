"""Admin management of the manual Stripe platform keys."""

from sqlalchemy.orm import Session

from ..core.enums import STRIPE_APP_SLUG
from ..core.exceptions import NotFoundException
from ..models.credential import AppConfig
from ..repositories.factory import RepositoryFactory
from ..schemas.credential_schemas import AppKeys, AppKeysResponse
from .base import BaseService


def mask_secret(value: str, visible: int = 4) -> str:
    """Show only the key type prefix and the last characters."""
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:3]}...{value[-visible:]}"


class AppConfigService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_app_config_repository(db)

    def _to_response(self, config: AppConfig) -> AppKeysResponse:
        keys = AppKeys.model_validate(config.keys or {})
        return AppKeysResponse(
            enabled=bool(config.enabled),
            client_id=keys.client_id,
            client_secret=mask_secret(keys.client_secret),
            public_key=keys.public_key,
            webhook_secret=mask_secret(keys.webhook_secret),
            payment_fee_percentage=keys.payment_fee_percentage,
            payment_fee_fixed=keys.payment_fee_fixed,
        )

    @BaseService.measure_operation("save_app_keys")
    def save_keys(self, keys: AppKeys) -> AppKeysResponse:
        with self.transaction():
            config = self.repository.upsert(STRIPE_APP_SLUG, keys=keys.model_dump(), enabled=True)
        self.logger.info(f"Manual {STRIPE_APP_SLUG} keys saved and enabled")
        return self._to_response(config)

    def get_keys(self) -> AppKeysResponse:
        config = self.repository.get_by_slug(STRIPE_APP_SLUG)
        if config is None:
            raise NotFoundException("Stripe app keys are not configured", code="APP_KEYS_NOT_FOUND")
        return self._to_response(config)

    @BaseService.measure_operation("disable_app_keys")
    def disable(self) -> AppKeysResponse:
        with self.transaction():
            config = self.repository.set_enabled(STRIPE_APP_SLUG, False)
        if config is None:
            raise NotFoundException("Stripe app keys are not configured", code="APP_KEYS_NOT_FOUND")
        self.logger.info(f"Manual {STRIPE_APP_SLUG} keys disabled")
        return self._to_response(config)
