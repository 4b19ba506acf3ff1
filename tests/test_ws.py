import pytest
from starlette.websockets import WebSocketDisconnect


def test_public_feed_pushes_approved_snapshots(client, admin_headers):
    with client.websocket_connect("/ws/reports") as ws:
        assert ws.receive_json() == {"type": "snapshot", "reports": []}

        rid = client.post("/api/reports", json={"phoneNumber": "555-1234", "category": "Bank Scam"}).json()["id"]
        client.post(f"/api/admin/reports/{rid}/approve", headers=admin_headers)

        # The pending-only snapshot may be superseded before it is sent.
        message = ws.receive_json()
        while not message["reports"]:
            message = ws.receive_json()
        assert [r["id"] for r in message["reports"]] == [rid]
        assert message["reports"][0]["confirmationRatio"] == 0.0


def test_admin_feed_includes_pending(client):
    rid = client.post("/api/reports", json={"phoneNumber": "555-1234", "category": "Bank Scam"}).json()["id"]

    with client.websocket_connect("/ws/admin?secret=test-secret") as ws:
        message = ws.receive_json()

    assert [r["id"] for r in message["reports"]] == [rid]
    assert message["reports"][0]["approved"] is False


def test_admin_feed_rejects_bad_secret(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/admin?secret=nope") as ws:
            ws.receive_json()

    assert exc.value.code == 4401
