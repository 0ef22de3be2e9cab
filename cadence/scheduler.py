"""
Recurrence Scheduler

Periodically materializes due instances of every user's recurring templates.
Run with ``python -m cadence.scheduler``. Ticks are idempotent, so running more
than one scheduler, or a manual advance alongside it, only costs duplicate
work.
"""

import asyncio
import os
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from cadence.models.user import User
from cadence.services.instance_spawner import InstanceSpawner
from cadence.utils.dates import user_today
from cadence.utils.logger import get_logger
from cadence.utils.metrics import metrics_collector

load_dotenv()

logger = get_logger(__name__)

SCHEDULER_INTERVAL_SECONDS = int(os.environ.get("SCHEDULER_INTERVAL_SECONDS", "3600"))


@metrics_collector.time_operation("scheduler_tick_seconds")
def run_tick(engine: Engine, now: Optional[datetime] = None) -> int:
    """Advance every user's templates to the user's local today.

    Returns:
        Number of instances created
    """
    now = now or datetime.utcnow()
    created = 0
    with Session(engine) as session:
        users = [(u.id, u.timezone) for u in session.exec(select(User)).all()]
        spawner = InstanceSpawner(session)
        for user_id, timezone in users:
            created += spawner.advance_recurrences(user_today(timezone, now), user_id=user_id)
    return created


async def run_forever(engine: Engine, interval_seconds: int = SCHEDULER_INTERVAL_SECONDS):
    logger.info("Starting recurrence scheduler", interval_seconds=interval_seconds)
    while True:
        try:
            created = await asyncio.to_thread(run_tick, engine)
            logger.info("Scheduler tick finished", created=created)
        except Exception:
            # Next tick retries; a failed tick must not kill the process
            logger.exception("Scheduler tick failed")
        await asyncio.sleep(interval_seconds)


async def main():
    from cadence.db.config import engine
    from cadence.db.init import init_db

    init_db(engine)
    await run_forever(engine)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
