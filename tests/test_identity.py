from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from jose import jwt
import pytest

from db.models import UserRole
from ideas.errors import Unauthenticated
from ideas.identity import AuthConfig, load_auth_config, resolve_identity

CONFIG = AuthConfig(secret="unit-secret", algorithm="HS256")


def _bearer(claims: dict, secret: str = CONFIG.secret) -> str:
    return "Bearer " + jwt.encode(claims, secret, algorithm="HS256")


def test_missing_header_is_unauthenticated(session) -> None:
    with pytest.raises(Unauthenticated) as exc:
        resolve_identity(session, None, CONFIG)
    assert exc.value.to_dict()["status"] == 401


@pytest.mark.parametrize("header", ["Token abc", "Bearer ", "Basic dXNlcjpwYXNz"])
def test_wrong_scheme_is_unauthenticated(session, header: str) -> None:
    with pytest.raises(Unauthenticated):
        resolve_identity(session, header, CONFIG)


def test_bad_signature_is_unauthenticated(session) -> None:
    header = _bearer({"sub": str(uuid4())}, secret="someone-else")
    with pytest.raises(Unauthenticated):
        resolve_identity(session, header, CONFIG)


def test_expired_token_is_unauthenticated(session) -> None:
    expired = datetime.now(UTC) - timedelta(minutes=5)
    header = _bearer({"sub": str(uuid4()), "exp": int(expired.timestamp())})
    with pytest.raises(Unauthenticated):
        resolve_identity(session, header, CONFIG)


@pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": "not-a-uuid"}])
def test_invalid_subject_is_unauthenticated(session, claims: dict) -> None:
    with pytest.raises(Unauthenticated):
        resolve_identity(session, _bearer(claims), CONFIG)


def test_valid_token_without_profile_has_no_role(session) -> None:
    user_id = uuid4()
    identity = resolve_identity(session, _bearer({"sub": str(user_id), "name": "Ada"}), CONFIG)

    assert identity.user_id == user_id
    assert identity.role is None
    assert identity.profile_missing is True
    assert identity.is_admin is False
    assert identity.claims["name"] == "Ada"


def test_role_comes_from_profile(session, make_profile) -> None:
    admin = make_profile(UserRole.ADMIN)
    owner = make_profile()

    assert resolve_identity(session, _bearer({"sub": str(admin.id)}), CONFIG).role is UserRole.ADMIN
    assert resolve_identity(session, _bearer({"sub": str(owner.id)}), CONFIG).role is UserRole.OWNER


def test_load_auth_config_requires_secret(monkeypatch) -> None:
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(RuntimeError):
        load_auth_config()

    monkeypatch.setenv("JWT_SECRET", "abc")
    monkeypatch.delenv("JWT_ALGORITHM", raising=False)
    monkeypatch.delenv("JWT_AUDIENCE", raising=False)
    assert load_auth_config() == AuthConfig(secret="abc", algorithm="HS256")


def test_audience_is_checked_only_when_configured(session, make_profile) -> None:
    owner = make_profile()
    header = _bearer({"sub": str(owner.id), "aud": "authenticated"})

    assert resolve_identity(session, header, CONFIG).user_id == owner.id

    scoped = AuthConfig(secret=CONFIG.secret, algorithm="HS256", audience="authenticated")
    assert resolve_identity(session, header, scoped).user_id == owner.id

    wrong = AuthConfig(secret=CONFIG.secret, algorithm="HS256", audience="service_role")
    with pytest.raises(Unauthenticated):
        resolve_identity(session, header, wrong)
