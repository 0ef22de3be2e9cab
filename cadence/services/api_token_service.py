"""Calendar feed tokens: issue, look up and revoke."""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from cadence.models.api_token import ApiToken
from cadence.utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_PREFIX = "cad_"


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class ApiTokenService:
    def __init__(self, session: Session):
        self.session = session

    def issue(self, user_id: str, expires_in_days: Optional[int] = None) -> Tuple[str, ApiToken]:
        """Create a token. The raw value is returned once and never stored."""
        raw_token = TOKEN_PREFIX + secrets.token_urlsafe(32)
        expires_at = None
        if expires_in_days:
            expires_at = datetime.utcnow() + timedelta(days=expires_in_days)

        token = ApiToken(
            user_id=user_id,
            token_hash=hash_token(raw_token),
            token_prefix=raw_token[:12],
            expires_at=expires_at,
        )
        self.session.add(token)
        self.session.commit()
        self.session.refresh(token)
        logger.info("Issued calendar token", user_id=user_id, token_prefix=token.token_prefix)
        return raw_token, token

    def find_valid(self, raw_token: Optional[str], now: Optional[datetime] = None) -> Optional[ApiToken]:
        """The live token matching ``raw_token``, or None if unknown, revoked or expired."""
        if not raw_token:
            return None
        now = now or datetime.utcnow()
        token = self.session.exec(
            select(ApiToken).where(ApiToken.token_hash == hash_token(raw_token))
        ).first()
        if token is None or token.revoked_at is not None:
            return None
        if token.expires_at is not None and token.expires_at <= now:
            return None
        return token

    def list_active(self, user_id: str) -> List[ApiToken]:
        statement = (
            select(ApiToken)
            .where(ApiToken.user_id == user_id)
            .where(ApiToken.revoked_at.is_(None))
            .order_by(ApiToken.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def revoke(self, user_id: str, token_id: int) -> bool:
        token = self.session.get(ApiToken, token_id)
        if token is None or token.user_id != user_id or token.revoked_at is not None:
            return False
        token.revoked_at = datetime.utcnow()
        self.session.add(token)
        self.session.commit()
        return True
