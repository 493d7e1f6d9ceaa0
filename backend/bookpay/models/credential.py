"""Stored payment credentials and the platform-wide manual app configuration."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from ..core.enums import STRIPE_APP_SLUG, STRIPE_CREDENTIAL_TYPE
from ..database import Base


class Credential(Base):
    """
    An OAuth connection to the payment provider, owned by a user or a team.

    ``key`` holds the raw provider payload. It is parsed into a typed model by
    the credential resolver and nowhere else.
    """

    __tablename__ = "credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(100), nullable=False, default=STRIPE_CREDENTIAL_TYPE)
    app_slug = Column(String(50), nullable=False, default=STRIPE_APP_SLUG)
    key = Column(JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"), nullable=False, default=dict)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    invalid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<Credential {self.id}: type={self.type} user={self.user_id} team={self.team_id}>"


class AppConfig(Base):
    """Per-app key/value configuration, used for manually configured platform keys."""

    __tablename__ = "app_configs"

    slug = Column(String(50), primary_key=True, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    keys = Column(JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"), nullable=False, default=dict)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<AppConfig slug={self.slug} enabled={self.enabled}>"
