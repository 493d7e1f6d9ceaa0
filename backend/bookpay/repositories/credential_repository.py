"""Credential and app configuration lookups."""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import STRIPE_CREDENTIAL_TYPE
from ..models.credential import AppConfig, Credential
from .base_repository import BaseRepository


class CredentialRepository(BaseRepository[Credential]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Credential)

    def _valid_payment_credentials(self):
        return self._build_query().filter(
            Credential.type == STRIPE_CREDENTIAL_TYPE,
            Credential.invalid.is_(False),
        )

    def find_for_user(self, user_id: int) -> Optional[Credential]:
        query = self._valid_payment_credentials().filter(Credential.user_id == user_id)
        results = self._execute_query(query.order_by(Credential.id.desc()).limit(1))
        return results[0] if results else None

    def find_for_team(self, team_id: int) -> Optional[Credential]:
        query = self._valid_payment_credentials().filter(Credential.team_id == team_id)
        results = self._execute_query(query.order_by(Credential.id.desc()).limit(1))
        return results[0] if results else None


class AppConfigRepository(BaseRepository[AppConfig]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, AppConfig)

    def get_by_slug(self, slug: str) -> Optional[AppConfig]:
        return self.get_by_id(slug)

    def upsert(self, slug: str, *, keys: Dict[str, Any], enabled: bool = True) -> AppConfig:
        existing = self.get_by_slug(slug)
        if existing is None:
            return self.create(slug=slug, keys=keys, enabled=enabled)
        existing.keys = dict(keys)
        existing.enabled = enabled
        self.flush()
        return existing

    def set_enabled(self, slug: str, enabled: bool) -> Optional[AppConfig]:
        return self.update(slug, enabled=enabled)
