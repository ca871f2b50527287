"""
Tests for the exclusive job runner used by the Celery tasks.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import LockNotOwnedError

from billing.workers.billing import run_exclusive

MODULE = "billing.workers.billing"


def make_lock(acquired: bool = True, release_error: Exception = None) -> MagicMock:
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock(side_effect=release_error)
    return lock


@pytest.mark.asyncio
async def test_job_runs_and_releases_lock():
    lock = make_lock()
    job = AsyncMock(return_value={"processed": 2})

    with patch(f"{MODULE}.job_lock", return_value=lock), \
         patch(f"{MODULE}.RedisClient.close", new=AsyncMock()), \
         patch(f"{MODULE}.close_db", new=AsyncMock()) as close_db:
        summary = await run_exclusive("charge", job)

    assert summary == {"processed": 2}
    lock.release.assert_awaited_once()
    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_job_skipped_when_lock_held():
    lock = make_lock(acquired=False)
    job = AsyncMock()

    with patch(f"{MODULE}.job_lock", return_value=lock), \
         patch(f"{MODULE}.RedisClient.close", new=AsyncMock()), \
         patch(f"{MODULE}.close_db", new=AsyncMock()):
        summary = await run_exclusive("charge", job)

    assert summary is None
    job.assert_not_awaited()
    lock.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_lock_does_not_fail_finished_job():
    lock = make_lock(release_error=LockNotOwnedError("Cannot release a lock that's no longer owned"))
    job = AsyncMock(return_value={"processed": 1})

    with patch(f"{MODULE}.job_lock", return_value=lock), \
         patch(f"{MODULE}.RedisClient.close", new=AsyncMock()), \
         patch(f"{MODULE}.close_db", new=AsyncMock()):
        summary = await run_exclusive("charge", job)

    assert summary == {"processed": 1}
