"""User-local calendar dates."""
from datetime import date, datetime
from typing import Optional

import pytz

from cadence.utils.logger import get_logger

logger = get_logger(__name__)


def get_timezone(tz_name: Optional[str]):
    """Resolve an IANA zone name, falling back to UTC for unknown names."""
    if not tz_name:
        return pytz.utc
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone, using UTC", timezone=tz_name)
        return pytz.utc


def user_today(tz_name: Optional[str], now: Optional[datetime] = None) -> date:
    """The calendar date in ``tz_name`` at ``now`` (naive values are taken as UTC)."""
    now = now or datetime.utcnow()
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(get_timezone(tz_name)).date()


def today_for_user(session, user_id: str, now: Optional[datetime] = None) -> date:
    """``user_today`` for a stored user; unknown users get the UTC date."""
    from cadence.models.user import User

    user = session.get(User, user_id)
    return user_today(user.timezone if user else None, now)
