"""
Prize Distribution API Tests.

상금 분배 API 엔드포인트 테스트.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tournament_admin.api.deps import get_app_settings
from tournament_admin.main import create_app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings, store, orchestrator):
    application = create_app(test_settings)
    # ASGITransport 는 lifespan 을 실행하지 않음
    application.state.store = store
    application.state.orchestrator = orchestrator
    application.dependency_overrides[get_app_settings] = lambda: test_settings
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def admin_headers(token_factory) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_factory('admin-1', role='admin')}"}


BASE = "/api/v1/tournaments"


# =============================================================================
# Auth
# =============================================================================


class TestAdminAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.post(f"{BASE}/t-1/distribute-prizes")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, client, token_factory, seed_tournament):
        await seed_tournament()
        headers = {"Authorization": f"Bearer {token_factory('player-7', role='user')}"}

        response = await client.post(f"{BASE}/t-1/distribute-prizes", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_expired_token(self, client, token_factory):
        token = token_factory("admin-1", role="admin", expires_in=timedelta(minutes=-5))

        response = await client.get(
            f"{BASE}/t-1/prize-distribution",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_wrong_signature(self, client, token_factory):
        token = token_factory(
            "admin-1", role="admin", secret="another-signing-key-of-sufficient-length"
        )

        response = await client.get(
            f"{BASE}/t-1/prize-distribution",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_INVALID_TOKEN"


# =============================================================================
# Distribute
# =============================================================================


class TestDistributePrizesEndpoint:
    @pytest.mark.asyncio
    async def test_distribute(self, client, admin_headers, seed_tournament, wallet_balance):
        await seed_tournament()

        response = await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["tournamentId"] == "t-1"
        assert body["totalDistributed"] == 900
        assert body["totalKillRewards"] == 540
        assert body["firstPlaceWinner"]["userId"] == "u0"
        assert body["firstPlaceWinner"]["prizeAmount"] == 630
        assert len(body["distributions"]) == 3
        assert body["skipped"] == []
        assert await wallet_balance("u0") == 630

    @pytest.mark.asyncio
    async def test_second_call_conflicts(self, client, admin_headers, seed_tournament):
        """두 번째 호출은 409, 표준 에러 포맷."""
        await seed_tournament()
        await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        response = await client.post(
            f"{BASE}/t-1/distribute-prizes",
            headers={**admin_headers, "X-Request-ID": "req-123"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"]["code"] == "ALREADY_DISTRIBUTED"
        assert body["error"]["details"] == {"tournamentId": "t-1"}
        assert body["traceId"] == "req-123"
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_not_completed(self, client, admin_headers, seed_tournament):
        await seed_tournament(status="upcoming")

        response = await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, client, admin_headers):
        response = await client.post(f"{BASE}/nope/distribute-prizes", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TOURNAMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_no_results(self, client, admin_headers, seed_tournament):
        await seed_tournament(kills=())

        response = await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "NO_RESULTS"

    @pytest.mark.asyncio
    async def test_settled_with_bad_percentage_conflicts(self, client, admin_headers, seed_tournament):
        await seed_tournament(prizesDistributed=True, firstPrizePercentage=150)

        response = await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_DISTRIBUTED"

        preview = await client.get(f"{BASE}/t-1/prize-distribution", headers=admin_headers)
        assert preview.status_code == 200
        assert preview.json()["blockedBy"]["code"] == "ALREADY_DISTRIBUTED"
        assert preview.json()["plan"] is None


# =============================================================================
# Rule + preview
# =============================================================================


class TestPrizeDistributionRuleEndpoints:
    @pytest.mark.asyncio
    async def test_preview(self, client, admin_headers, seed_tournament):
        await seed_tournament()

        response = await client.get(f"{BASE}/t-1/prize-distribution", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["canDistribute"] is True
        assert body["blockedBy"] is None
        assert body["rule"]["kind"] == "computed"
        assert body["rule"]["firstPrizePercentage"] == 40
        assert body["plan"]["actualPrizePool"] == 900
        assert body["plan"]["perKillReward"] == 90
        assert body["plan"]["entries"][0]["rewardBreakdown"] == {
            "firstPrize": 360,
            "killReward": 270,
        }

    @pytest.mark.asyncio
    async def test_save_override_rule(self, client, admin_headers, seed_tournament):
        await seed_tournament()

        response = await client.post(
            f"{BASE}/t-1/prize-distribution",
            headers=admin_headers,
            json={
                "adminOverride": True,
                "overrideDistribution": [
                    {"position": 1, "amount": 500},
                    {"position": 2, "amount": 200},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["effectiveRule"]["kind"] == "override"
        assert body["prizeDistributionRule"]["adminOverride"] is True

        preview = await client.get(f"{BASE}/t-1/prize-distribution", headers=admin_headers)
        rewards = [e["reward"] for e in preview.json()["plan"]["entries"]]
        assert rewards[:3] == [500, 200, 0]

    @pytest.mark.asyncio
    async def test_empty_override_rejected(self, client, admin_headers, seed_tournament):
        await seed_tournament()

        response = await client.post(
            f"{BASE}/t-1/prize-distribution",
            headers=admin_headers,
            json={"adminOverride": True, "overrideDistribution": []},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_RULE"

    @pytest.mark.asyncio
    async def test_out_of_range_percentage(self, client, admin_headers, seed_tournament):
        await seed_tournament()

        response = await client.post(
            f"{BASE}/t-1/prize-distribution",
            headers=admin_headers,
            json={"firstPlacePercent": 150},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_REQUEST"


# =============================================================================
# Listing / health
# =============================================================================


class TestDistributionsEndpoint:
    @pytest.mark.asyncio
    async def test_list(self, client, admin_headers, seed_tournament):
        await seed_tournament()
        await client.post(f"{BASE}/t-1/distribute-prizes", headers=admin_headers)

        response = await client.get(
            f"{BASE}/t-1/distributions",
            headers=admin_headers,
            params={"page": 1, "pageSize": 2},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["pageSize"] == 2
        assert [item["prizeAmount"] for item in body["items"]] == [630, 180]

    @pytest.mark.asyncio
    async def test_invalid_page_size(self, client, admin_headers, seed_tournament):
        await seed_tournament()

        response = await client.get(
            f"{BASE}/t-1/distributions",
            headers=admin_headers,
            params={"pageSize": 0},
        )

        assert response.status_code == 422


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["store"] == "healthy"
        assert body["services"]["redis"] == "not configured"
