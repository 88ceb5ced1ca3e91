"""Tests for the dashboard JSON API."""

from datetime import timedelta

import pytest

from common.notification_store import (
    Notification,
    NotificationCategory,
    NotificationStatus,
    RunWatermark,
)
from dashboard.app import create_app


@pytest.fixture
def app(tmp_path):
    return create_app({
        "TESTING": True,
        "NOTIFICATION_DB_PATH": str(tmp_path / "api.db"),
        "FACILITY_ID": "F1",
        "DASHBOARD_API_KEY": "",
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(app, now):
    app.notification_store.commit_run(
        "F1",
        [
            Notification(
                id="n1",
                facility_id="F1",
                rule_id="vax_due_rule",
                category=NotificationCategory.VAX_GAP,
                message="Jane Doe is due for Pneumococcal vaccine.",
                resident_id="MRN1",
                created_at=now,
            ),
            Notification(
                id="n2",
                facility_id="F1",
                rule_id="note_hashtag_rule",
                category=NotificationCategory.LINE_LIST_REVIEW,
                message="Symptom signal detected: #cough",
                resident_id="MRN1",
                action="add_to_line_list",
                payload={"residentId": "MRN1", "symptomClass": "resp"},
                created_at=now + timedelta(minutes=1),
            ),
        ],
        RunWatermark().advance(now, now),
    )
    return app.notification_store


class TestNotificationEndpoints:
    """Inbox listing and status changes."""

    def test_list(self, client, seeded):
        response = client.get("/api/notifications")
        assert response.status_code == 200
        data = response.get_json()
        assert data["count"] == 2
        assert data["facilityId"] == "F1"
        assert [n["id"] for n in data["notifications"]] == ["n2", "n1"]

    def test_list_filters(self, client, seeded):
        seeded.mark_read("F1", "n1")
        unread = client.get("/api/notifications?status=unread").get_json()
        assert [n["id"] for n in unread["notifications"]] == ["n2"]

        vax = client.get("/api/notifications?category=vax_gap").get_json()
        assert [n["id"] for n in vax["notifications"]] == ["n1"]

    def test_invalid_filter(self, client, seeded):
        assert client.get("/api/notifications?status=snoozed").status_code == 400
        assert client.get("/api/notifications?category=nope").status_code == 400

    def test_other_facility_is_empty(self, client, seeded):
        data = client.get("/api/notifications?facility=F2").get_json()
        assert data["count"] == 0

    def test_get_with_audit(self, client, seeded):
        data = client.get("/api/notifications/n2").get_json()
        assert data["action"] == "add_to_line_list"
        assert [e["action"] for e in data["audit"]] == ["created"]

    def test_get_missing(self, client, seeded):
        assert client.get("/api/notifications/nope").status_code == 404

    def test_mark_read(self, client, seeded):
        response = client.post("/api/notifications/n1/read", json={"user": "nurse"})
        assert response.status_code == 200
        assert response.get_json()["notification"]["status"] == "read"

    def test_read_all(self, client, seeded):
        data = client.post("/api/notifications/read-all").get_json()
        assert data["updated"] == 2
        assert seeded.list_notifications("F1", status=NotificationStatus.UNREAD) == []

    def test_dismiss(self, client, seeded):
        data = client.post("/api/notifications/n1/dismiss").get_json()
        assert data["notification"]["status"] == "dismissed"

    def test_acted(self, client, seeded):
        data = client.post("/api/notifications/n2/acted", json={"lineListEventId": "ll-1"}).get_json()
        assert data["notification"]["lineListEventId"] == "ll-1"

    def test_delete(self, client, seeded):
        assert client.delete("/api/notifications/n1").status_code == 200
        assert client.get("/api/notifications/n1").status_code == 404
        assert client.delete("/api/notifications/n1").status_code == 404

    def test_watermark_and_stats(self, client, seeded):
        watermark = client.get("/api/watermark").get_json()
        assert watermark["version"] == 1
        assert watermark["lastDetectionRunAtISO"] == "2024-10-02T12:00:00.000Z"

        stats = client.get("/api/stats").get_json()
        assert stats["total"] == 2
        assert stats["by_status"]["unread"] == 2


class TestRunEndpoint:
    """Pipeline runs triggered over HTTP."""

    def test_run_commits(self, client, records, now):
        body = records.export(
            residents=[records.resident()],
            abts=[records.abt(indication="Pneumonia")],
        )
        response = client.post(
            "/api/run",
            json=body,
            query_string={"now": "2024-10-02T12:00:00Z"},
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["committed"] is True
        assert sorted(data["insertedIds"]) == [
            "abt_syndrome_rule_MRN1_abt1_2024-10-02",
            "vax_gap_flu_rule_MRN1_2024_2024-10-02",
        ]

        again = client.post("/api/run", json=body, query_string={"now": "2024-10-02T12:30:00Z"})
        assert again.get_json()["ran"] is False

    def test_dry_run(self, client, app, records):
        body = records.export(residents=[records.resident()])
        data = client.post(
            "/api/run",
            json=body,
            query_string={"now": "2024-10-02T12:00:00Z", "dry_run": "true"},
        ).get_json()
        assert data["new_notifications"] == 1
        assert app.notification_store.list_notifications("F1") == []

    def test_requires_json_body(self, client):
        assert client.post("/api/run", data="nope").status_code == 400

    def test_invalid_now(self, client, records):
        response = client.post("/api/run", json=records.export(), query_string={"now": "soon"})
        assert response.status_code == 400


class TestApiKey:
    """Optional API key protection."""

    @pytest.fixture
    def locked_client(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "NOTIFICATION_DB_PATH": str(tmp_path / "locked.db"),
            "FACILITY_ID": "F1",
            "DASHBOARD_API_KEY": "secret",
        })
        return app.test_client()

    def test_missing_key(self, locked_client):
        assert locked_client.get("/api/notifications").status_code == 401

    def test_header_key(self, locked_client):
        response = locked_client.get("/api/notifications", headers={"X-API-Key": "secret"})
        assert response.status_code == 200
