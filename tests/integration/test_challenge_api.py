"""HTTP API tests for the challenge endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from tests.factories import make_challenge_payload

BASE = "/api/v1/challenges"


def _as(user_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


async def _create(client, creator_id, **overrides) -> dict:
    response = await client.post(BASE, json=make_challenge_payload(**overrides), headers=_as(creator_id))
    assert response.status_code == 201, response.text
    return response.json()


class TestIdentity:
    @pytest.mark.asyncio
    async def test_missing_header(self, async_client):
        response = await async_client.post(BASE, json=make_challenge_payload())
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_header(self, async_client):
        response = await async_client.post(
            BASE, json=make_challenge_payload(), headers={"X-User-Id": "not-a-uuid"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers


class TestChallengeEndpoints:
    @pytest.mark.asyncio
    async def test_create_challenge(self, async_client, creator_id):
        body = await _create(async_client, creator_id, stake_amount="50")

        assert body["status"] == "draft"
        assert body["creator_id"] == str(creator_id)
        assert body["duration_days"] == 30
        assert body["has_stakes"] is True
        assert Decimal(str(body["stake_amount"])) == Decimal("50")
        assert set(body["requirements"]) == {"workout", "diet", "reflection"}

    @pytest.mark.asyncio
    async def test_create_with_inverted_dates(self, async_client, creator_id):
        response = await async_client.post(
            BASE,
            json=make_challenge_payload(start_date="2026-11-30", end_date="2026-11-01"),
            headers=_as(creator_id),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_create_with_empty_name(self, async_client, creator_id):
        response = await async_client.post(
            BASE, json=make_challenge_payload(name=""), headers=_as(creator_id)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_detail(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        await async_client.post(
            f"{BASE}/{created['id']}/participants",
            json={"user_id": str(invitee_id)},
            headers=_as(creator_id),
        )

        response = await async_client.get(f"{BASE}/{created['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["challenge"]["id"] == created["id"]
        assert [p["user_id"] for p in body["participants"]] == [str(creator_id), str(invitee_id)]
        assert [p["status"] for p in body["participants"]] == ["active", "invited"]

    @pytest.mark.asyncio
    async def test_get_unknown_challenge(self, async_client):
        response = await async_client.get(f"{BASE}/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"]["type"] == "not_found"

    @pytest.mark.asyncio
    async def test_start_blocked_by_unverified_stake(self, async_client, creator_id):
        created = await _create(async_client, creator_id, stake_amount="50")

        response = await async_client.post(f"{BASE}/{created['id']}/start", headers=_as(creator_id))

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["type"] == "stake_not_verified"
        assert detail["details"]["unverified_user_ids"] == [str(creator_id)]

    @pytest.mark.asyncio
    async def test_verify_then_start(self, async_client, creator_id):
        created = await _create(async_client, creator_id, stake_amount="50")

        verify = await async_client.post(
            f"{BASE}/{created['id']}/participants/{creator_id}/stake", headers=_as(creator_id)
        )
        assert verify.status_code == 200
        assert verify.json()["stake_verified"] is True

        start = await async_client.post(f"{BASE}/{created['id']}/start", headers=_as(creator_id))
        assert start.status_code == 200
        assert start.json()["status"] == "active"

    @pytest.mark.asyncio
    async def test_start_by_non_creator(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        response = await async_client.post(f"{BASE}/{created['id']}/start", headers=_as(invitee_id))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_complete_and_cancel(self, async_client, creator_id):
        first = await _create(async_client, creator_id)
        await async_client.post(f"{BASE}/{first['id']}/start", headers=_as(creator_id))
        complete = await async_client.post(f"{BASE}/{first['id']}/complete", headers=_as(creator_id))
        assert complete.json()["status"] == "completed"

        cancel_completed = await async_client.post(
            f"{BASE}/{first['id']}/cancel", headers=_as(creator_id)
        )
        assert cancel_completed.status_code == 409

        second = await _create(async_client, creator_id)
        cancel = await async_client.post(f"{BASE}/{second['id']}/cancel", headers=_as(creator_id))
        assert cancel.status_code == 200
        assert cancel.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_list_mine(self, async_client, creator_id):
        draft = await _create(async_client, creator_id)
        active = await _create(async_client, creator_id, start_date="2026-12-01", end_date="2026-12-31")
        await async_client.post(f"{BASE}/{active['id']}/start", headers=_as(creator_id))

        everything = await async_client.get(f"{BASE}/mine", headers=_as(creator_id))
        assert [c["id"] for c in everything.json()] == [active["id"], draft["id"]]

        only_active = await async_client.get(
            f"{BASE}/mine", params={"status": "active"}, headers=_as(creator_id)
        )
        assert [c["id"] for c in only_active.json()] == [active["id"]]

    @pytest.mark.asyncio
    async def test_large_limit_is_capped_not_rejected(self, async_client, creator_id):
        created = await _create(async_client, creator_id)

        response = await async_client.get(
            f"{BASE}/mine", params={"limit": 5000}, headers=_as(creator_id)
        )

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [created["id"]]

    @pytest.mark.asyncio
    async def test_sub_cent_stake_is_rejected(self, async_client, creator_id):
        response = await async_client.post(
            BASE, json=make_challenge_payload(stake_amount="0.001"), headers=_as(creator_id)
        )
        assert response.status_code == 422
        assert response.json()["detail"]["type"] == "validation_error"


class TestParticipantEndpoints:
    @pytest.mark.asyncio
    async def test_invite_accept_and_duplicate(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        url = f"{BASE}/{created['id']}/participants"

        invite = await async_client.post(url, json={"user_id": str(invitee_id)}, headers=_as(creator_id))
        assert invite.status_code == 201
        assert invite.json()["status"] == "invited"

        accept = await async_client.post(
            f"{BASE}/{created['id']}/invitation", json={"accept": True}, headers=_as(invitee_id)
        )
        assert accept.status_code == 200
        assert accept.json()["status"] == "active"
        assert accept.json()["invite_response"] == "accepted"

        duplicate = await async_client.post(
            url, json={"user_id": str(invitee_id)}, headers=_as(creator_id)
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["type"] == "conflict"

    @pytest.mark.asyncio
    async def test_invite_by_non_creator(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        response = await async_client.post(
            f"{BASE}/{created['id']}/participants",
            json={"user_id": str(uuid4())},
            headers=_as(invitee_id),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_respond_without_invitation(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        response = await async_client.post(
            f"{BASE}/{created['id']}/invitation", json={"accept": True}, headers=_as(invitee_id)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_withdraw(self, async_client, creator_id, invitee_id):
        created = await _create(async_client, creator_id)
        await async_client.post(
            f"{BASE}/{created['id']}/participants",
            json={"user_id": str(invitee_id)},
            headers=_as(creator_id),
        )

        response = await async_client.post(f"{BASE}/{created['id']}/withdraw", headers=_as(invitee_id))

        assert response.status_code == 200
        assert response.json()["status"] == "withdrawn"

    @pytest.mark.asyncio
    async def test_list_participants(self, async_client, creator_id):
        created = await _create(async_client, creator_id)
        response = await async_client.get(f"{BASE}/{created['id']}/participants")
        assert response.status_code == 200
        assert [p["user_id"] for p in response.json()] == [str(creator_id)]

    @pytest.mark.asyncio
    async def test_missed_log_event(self, async_client, creator_id):
        created = await _create(async_client, creator_id)
        await async_client.post(f"{BASE}/{created['id']}/start", headers=_as(creator_id))

        response = await async_client.post(
            f"{BASE}/events/missed-log",
            json={
                "challenge_id": created["id"],
                "user_id": str(creator_id),
                "missed_on": "2026-11-02",
                "kind": "workout",
            },
        )

        assert response.status_code == 200
        assert response.json()["status"] == "failed"

    @pytest.mark.asyncio
    async def test_missed_log_on_draft(self, async_client, creator_id):
        created = await _create(async_client, creator_id)
        response = await async_client.post(
            f"{BASE}/events/missed-log",
            json={"challenge_id": created["id"], "user_id": str(creator_id)},
        )
        assert response.status_code == 409
