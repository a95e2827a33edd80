"""Tests for solving a task and redeeming the reward over HTTP."""

import pytest

PLAYER_HEADERS = {"X-User-Id": "user-0001"}
OTHER_PLAYER_HEADERS = {"X-User-Id": "user-0002"}


def _solution(task):
    return list(range(task.puzzle_config["grid_size"]))


@pytest.mark.asyncio
async def test_solve_and_redeem(client, active_task):
    """Scenario: solve in 45s, receive a code, redeem it once."""
    response = await client.post(
        f"/api/v1/tasks/{active_task.id}/attempts",
        json={"solution": _solution(active_task), "time_taken_ms": 45_000},
        headers=PLAYER_HEADERS,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["solution"]["is_correct"] is True
    assert body["solution"]["score"] == 142
    assert body["attempt"]["time_taken_seconds"] == 45
    code = body["reward"]["reward_code"]
    assert code.startswith("TL")

    mine = await client.get(f"/api/v1/tasks/{active_task.id}/attempts/me", headers=PLAYER_HEADERS)
    assert mine.status_code == 200
    assert mine.json()["score"] == 142

    view = (await client.get(f"/api/v1/tasks/{active_task.id}", headers=PLAYER_HEADERS)).json()
    assert view["user_attempt"]["score"] == 142
    assert view["attempt_count"] == 1
    assert view["conversion_count"] == 1
    assert view["conversion_rate"] == 100.0

    rewards = (await client.get("/api/v1/rewards", headers=PLAYER_HEADERS)).json()
    assert rewards["summary"]["total_rewards"] == 1
    assert rewards["summary"]["total_unredeemed_value"] == "20.00"
    assert rewards["rewards"][0]["task_title"] == "Pizza Puzzle"

    response = await client.post("/api/v1/rewards/redeem", json={"reward_code": code}, headers=PLAYER_HEADERS)
    assert response.status_code == 200
    redemption = response.json()
    assert redemption["reward"]["is_redeemed"] is True
    assert redemption["company_details"]["company_name"] == "Slice of Life Pizzeria"
    assert redemption["company_details"]["website_url"] == "https://sliceoflife.example"
    assert redemption["how_to_redeem"].startswith("Show this code")

    again = await client.post("/api/v1/rewards/redeem", json={"reward_code": code}, headers=PLAYER_HEADERS)
    assert again.status_code == 409

    redeemed = (await client.get("/api/v1/rewards", params={"status": "redeemed"}, headers=PLAYER_HEADERS)).json()
    assert len(redeemed["rewards"]) == 1


@pytest.mark.asyncio
async def test_wrong_solution_gets_no_reward(client, active_task):
    wrong = list(reversed(_solution(active_task)))

    response = await client.post(
        f"/api/v1/tasks/{active_task.id}/attempts",
        json={"solution": wrong, "time_taken_ms": 10_000},
        headers=PLAYER_HEADERS,
    )

    assert response.status_code == 201
    assert response.json()["solution"]["score"] == 0
    assert response.json()["reward"] is None


@pytest.mark.asyncio
async def test_second_attempt_is_409(client, active_task):
    payload = {"solution": _solution(active_task), "time_taken_ms": 10_000}
    await client.post(f"/api/v1/tasks/{active_task.id}/attempts", json=payload, headers=PLAYER_HEADERS)

    response = await client.post(f"/api/v1/tasks/{active_task.id}/attempts", json=payload, headers=PLAYER_HEADERS)

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_attempt_requires_identity(client, active_task):
    response = await client.post(
        f"/api/v1/tasks/{active_task.id}/attempts",
        json={"solution": _solution(active_task), "time_taken_ms": 10_000},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_malformed_solution_is_422(client, active_task):
    response = await client.post(
        f"/api/v1/tasks/{active_task.id}/attempts",
        json={"solution": [0, 1], "time_taken_ms": 10_000},
        headers=PLAYER_HEADERS,
    )

    assert response.status_code == 422
    assert response.json()["field"] == "solution"


@pytest.mark.asyncio
async def test_negative_time_is_422(client, active_task):
    response = await client.post(
        f"/api/v1/tasks/{active_task.id}/attempts",
        json={"solution": _solution(active_task), "time_taken_ms": -5},
        headers=PLAYER_HEADERS,
    )

    assert response.status_code == 422
    assert response.json()["field"] == "time_taken_ms"


@pytest.mark.asyncio
async def test_attempt_on_draft_is_404(client, draft_task):
    response = await client.post(
        f"/api/v1/tasks/{draft_task.id}/attempts",
        json={"solution": _solution(draft_task), "time_taken_ms": 10_000},
        headers=PLAYER_HEADERS,
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_no_attempt_yet_is_404(client, active_task):
    response = await client.get(f"/api/v1/tasks/{active_task.id}/attempts/me", headers=PLAYER_HEADERS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cannot_redeem_someone_elses_code(client, active_task):
    body = (
        await client.post(
            f"/api/v1/tasks/{active_task.id}/attempts",
            json={"solution": _solution(active_task), "time_taken_ms": 10_000},
            headers=PLAYER_HEADERS,
        )
    ).json()

    response = await client.post(
        "/api/v1/rewards/redeem",
        json={"reward_code": body["reward"]["reward_code"]},
        headers=OTHER_PLAYER_HEADERS,
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_rewards_require_identity(client, engine):
    response = await client.get("/api/v1/rewards")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rewards_status_filter_is_validated(client, engine):
    response = await client.get("/api/v1/rewards", params={"status": "lost"}, headers=PLAYER_HEADERS)

    assert response.status_code == 422
    assert response.json()["field"] == "status"
