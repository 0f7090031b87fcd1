"""Tests for the per-dataset lock registry."""

import asyncio

import pytest

from app.core.locks import DatasetLocks

pytestmark = pytest.mark.asyncio


class TestDatasetLocks:
    """Tests for DatasetLocks.hold."""

    async def test_serializes_same_dataset(self):
        """Should never run two holders of the same dataset at once."""
        locks = DatasetLocks()
        inside = 0
        peak = 0

        async def worker():
            nonlocal inside, peak
            async with locks.hold("ds-1"):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert peak == 1

    async def test_different_datasets_run_concurrently(self):
        """Should not block holders of unrelated datasets."""
        locks = DatasetLocks()
        entered = asyncio.Event()

        async def holder():
            async with locks.hold("ds-1"):
                await asyncio.wait_for(entered.wait(), timeout=1)

        async def other():
            async with locks.hold("ds-2"):
                entered.set()

        await asyncio.gather(holder(), other())

    async def test_entries_are_released(self):
        """Should forget a dataset once nobody holds or waits on it."""
        locks = DatasetLocks()

        async with locks.hold("ds-1"):
            assert len(locks) == 1

        assert len(locks) == 0

    async def test_released_on_error(self):
        """Should release the lock when the body raises."""
        locks = DatasetLocks()

        with pytest.raises(ValueError):
            async with locks.hold("ds-1"):
                raise ValueError("boom")

        assert len(locks) == 0
        async with asyncio.timeout(1):
            async with locks.hold("ds-1"):
                pass
