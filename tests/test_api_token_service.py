# tests/test_api_token_service.py

from datetime import datetime, timedelta

from sqlmodel import Session

from cadence.services.api_token_service import ApiTokenService, hash_token


def test_only_the_hash_is_stored(session: Session, user) -> None:
    raw, token = ApiTokenService(session).issue(user.id)
    assert token.token_hash == hash_token(raw)
    assert raw not in (token.token_hash, token.token_prefix)
    assert raw.startswith(token.token_prefix)


def test_expired_and_revoked_tokens_are_rejected(session: Session, user) -> None:
    service = ApiTokenService(session)
    raw, token = service.issue(user.id, expires_in_days=1)

    assert service.find_valid(raw).id == token.id
    assert service.find_valid(raw, now=datetime.utcnow() + timedelta(days=2)) is None

    assert service.revoke(user.id, token.id)
    assert service.find_valid(raw) is None
    assert not service.revoke(user.id, token.id)
    assert service.list_active(user.id) == []


def test_unknown_tokens(session: Session) -> None:
    service = ApiTokenService(session)
    assert service.find_valid(None) is None
    assert service.find_valid("cad_unknown") is None
