"""Tests for points totals, location leaderboards and badges."""

import uuid

import pytest
import requests
from conftest import (
    BASE_URL,
    MANITOBA_ID,
    ONTARIO_ID,
    db_execute,
    db_query_one,
    make_supporter,
    make_user,
)

pytestmark = pytest.mark.integration


def support_all(idea_id, count):
    for _ in range(count):
        _, headers = make_supporter()
        resp = requests.put(f"{BASE_URL}/ideas/{idea_id}/support", headers=headers)
        assert resp.status_code == 200


@pytest.fixture
def local_author(town):
    """An author whose home is the test town, with one idea posted there."""
    user_id, headers = make_user(home_location_id=town)
    resp = requests.post(f"{BASE_URL}/ideas", headers=headers, json={
        "locationId": town, "title": "Community garden", "description": "Behind the library."})
    assert resp.status_code == 201, resp.text
    return user_id, headers, resp.json()["id"]


class TestPoints:
    def test_support_credits_global_and_local(self, local_author, town):
        user_id, headers, idea_id = local_author
        support_all(idea_id, 3)

        mine = requests.get(f"{BASE_URL}/users/me/points", headers=headers).json()
        assert mine["globalPoints"] == 3
        assert mine["localPoints"] == 3
        assert mine["location"]["id"] == town

    def test_withdrawn_support_is_debited(self, local_author):
        user_id, _, idea_id = local_author
        _, supporter = make_supporter()
        url = f"{BASE_URL}/ideas/{idea_id}/support"
        requests.put(url, headers=supporter)
        requests.delete(url, headers=supporter)
        assert requests.get(f"{BASE_URL}/users/{user_id}/points").json()["globalPoints"] == 0

    def test_unknown_user(self, api):
        resp = requests.get(f"{BASE_URL}/users/nobody-here/points")
        assert resp.status_code == 404


class TestLeaderboardAndBadges:
    def test_leaderboard_includes_subtree_members(self, local_author):
        user_id, _, idea_id = local_author
        support_all(idea_id, 1)
        board = requests.get(f"{BASE_URL}/locations/{MANITOBA_ID}/leaderboard",
                             params={"limit": 100}).json()
        assert user_id in [u["id"] for u in board["users"]]

        other = requests.get(f"{BASE_URL}/locations/{ONTARIO_ID}/leaderboard",
                             params={"limit": 100}).json()
        assert user_id not in [u["id"] for u in other["users"]]

    def test_local_bronze_badge_granted_once(self, local_author, town):
        user_id, _, idea_id = local_author
        support_all(idea_id, 10)

        first = requests.get(f"{BASE_URL}/users/{user_id}/badges").json()
        again = requests.get(f"{BASE_URL}/users/{user_id}/badges").json()
        held = {(b["kind"], b["scope"]) for b in first["badges"]}
        assert ("bronze", f"location:{town}") in held
        assert again == first
        granted = db_query_one(
            "SELECT COUNT(*) AS n FROM badge WHERE user_id = %s AND kind = 'bronze' AND scope = %s",
            (user_id, f"location:{town}"))
        assert granted["n"] == 1

    def test_reading_badges_never_grants(self, api):
        user_id, _ = make_user()
        db_execute(
            """INSERT INTO points_ledger (id, user_id, amount, source, source_id)
               VALUES (%s, %s, 30, 'plan_issue', %s)""",
            (str(uuid.uuid4()), user_id, str(uuid.uuid4())),
        )
        resp = requests.get(f"{BASE_URL}/users/{user_id}/badges")
        assert resp.status_code == 200
        assert resp.json() == {"badges": []}
        row = db_query_one("SELECT COUNT(*) AS n FROM badge WHERE user_id = %s", (user_id,))
        assert row["n"] == 0
