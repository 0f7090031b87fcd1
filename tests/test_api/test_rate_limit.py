"""Tests for rate limiting on job mutation endpoints."""

import pytest
from httpx import AsyncClient

from app.core.rate_limit import MUTATION_LIMIT

pytestmark = pytest.mark.asyncio

ALLOWED = int(MUTATION_LIMIT.split("/")[0])


class TestRateLimiting:
    """Tests for rate limiting on /api/jobs/{id}/cancel."""

    async def test_rate_limit_blocks_excessive_requests(self, client: AsyncClient, auth_cookies):
        """Should answer 429 once the per-minute budget is used up."""
        statuses = []
        for _ in range(ALLOWED + 1):
            response = await client.post("/api/jobs/missing/cancel", cookies=auth_cookies)
            statuses.append(response.status_code)

        assert set(statuses[:ALLOWED]) == {404}
        assert statuses[ALLOWED] == 429

    async def test_rate_limit_error_message(self, client: AsyncClient, auth_cookies):
        for _ in range(ALLOWED):
            await client.post("/api/jobs/missing/retry", cookies=auth_cookies)

        response = await client.post("/api/jobs/missing/retry", cookies=auth_cookies)

        assert response.status_code == 429
        assert "too many requests" in response.json()["detail"].lower()

    async def test_reads_are_not_limited(self, client: AsyncClient, auth_cookies):
        """Should not count listing against the mutation budget."""
        for _ in range(ALLOWED + 1):
            response = await client.get("/api/jobs", cookies=auth_cookies)
            assert response.status_code == 200
