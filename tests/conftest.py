from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import models  # noqa: F401
from db.base import Base
from db.models import Idea, IdeaStatus, Profile, UserRole
from ideas.identity import Identity


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_profile(session):
    def _make(role: UserRole = UserRole.OWNER, full_name: str | None = None) -> Profile:
        profile = Profile(id=uuid4(), role=role.value, full_name=full_name)
        session.add(profile)
        session.commit()
        return profile

    return _make


@pytest.fixture()
def make_idea(session):
    def _make(
        owner: Profile,
        *,
        status: IdeaStatus = IdeaStatus.DRAFT,
        title: str = "Community solar kiosks",
        description: str = "Pay-as-you-go charging kiosks for rural markets.",
        tags: list[str] | None = None,
    ) -> Idea:
        idea = Idea(
            owner_id=owner.id,
            title=title,
            description=description,
            tags=tags or [],
            status=status.value,
            created_at=datetime.now(UTC),
        )
        session.add(idea)
        session.commit()
        return idea

    return _make


@pytest.fixture()
def identity_of():
    def _identity(profile: Profile) -> Identity:
        return Identity(user_id=profile.id, role=UserRole(profile.role))

    return _identity
