# tests/test_web.py

import pytest
from fastapi.testclient import TestClient

import web.app as web_app
from condor_stats.reports import StatsService
from tests.helpers import NOW, SETTINGS, create_test_db, seed_roster


@pytest.fixture
def client(tmp_path, monkeypatch):
    database = create_test_db(tmp_path)
    ids = seed_roster(database)
    monkeypatch.setattr(web_app, "db", database)
    monkeypatch.setattr(web_app, "_service", lambda: StatsService(database, now=NOW, settings=SETTINGS))
    yield TestClient(web_app.app), ids
    database.close()


class TestStatsApi:

    def test_condor_leaderboard(self, client):
        http, ids = client
        response = http.get("/api/stats/condor", params={"metric": "kills"})
        assert response.status_code == 200
        entries = response.json()["leaderboard"]
        assert [e["memberId"] for e in entries] == [ids["a"]]

    def test_conflicting_selectors_return_400(self, client):
        http, _ = client
        response = http.get("/api/stats/leaderboard", params={"period": "7d", "days": 3})
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "days"

    def test_events_rejected_for_leaderboard(self, client):
        http, _ = client
        response = http.get("/api/stats/leaderboard", params={"events": 5})
        assert response.status_code == 400

    def test_weekly_reports_week_number(self, client):
        http, _ = client
        body = http.get("/api/stats/weekly").json()
        assert body["weekNumber"] == 12
        assert body["metric"] == "ascenso"

    def test_myrank(self, client):
        http, _ = client
        body = http.get("/api/stats/myrank/d-a", params={"period": "all"}).json()
        assert body["aggregate"]["kills"] == 50
        assert body["lastUsedProviderId"] == "steam-a"

    def test_myrank_unknown_member_404(self, client):
        http, _ = client
        assert http.get("/api/stats/myrank/ghost").status_code == 404

    def test_last_events_default_count(self, client):
        http, ids = client
        body = http.get("/api/stats/last-events/d-b").json()
        assert [e["importId"] for e in body["events"]] == [ids["competitive_import"]]

    def test_gulag(self, client):
        http, ids = client
        body = http.get("/api/stats/gulag").json()
        assert body["inactivityDays"] == 30
        assert [row["memberId"] for row in body["gulag"]] == [ids["c"]]

    def test_gulag_negative_threshold_400(self, client):
        http, _ = client
        assert http.get("/api/stats/gulag", params={"inactivityDays": -1}).status_code == 400

    def test_members_report(self, client):
        http, _ = client
        body = http.get("/api/stats/members-report").json()
        assert body["totalMembers"] == 3

    def test_matches(self, client):
        http, ids = client
        body = http.get("/api/stats/matches", params={"days": 30}).json()
        assert body["period"] == "30d"
        assert body["matches"][0]["importId"] == ids["competitive_import"]
