"""Organizer accounts and teams."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Team(Base):
    """A team that can own event types and a shared payment connection."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    members = relationship("User", back_populates="team")

    def __repr__(self) -> str:
        return f"<Team {self.id}: {self.slug}>"


class User(Base):
    """An organizer who hosts bookable event types."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uid = Column(String(26), unique=True, nullable=False, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    username = Column(String(100), unique=True, nullable=True)
    time_zone = Column(String(64), nullable=False, default="UTC")
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    team = relationship("Team", back_populates="members")
    event_types = relationship("EventType", back_populates="owner")

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"
