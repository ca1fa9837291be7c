"""Tests for the connection and polling endpoints."""

from fastapi.testclient import TestClient

from session_sync.api.app import create_app
from session_sync.domain.status import ConnectionState


def test_initiate_endpoint_starts_connection(container, protocol_client) -> None:
    client = TestClient(create_app(container))

    response = client.post("/initiate/user-1/default")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "connecting"
    assert data["userId"] == "user-1"
    assert data["sessionId"] == "default"
    assert protocol_client.started == [("user-1", "default")]


def test_initiate_endpoint_reports_sidecar_failure(container, protocol_client) -> None:
    protocol_client.fail_start = True
    client = TestClient(create_app(container))

    response = client.post("/initiate/user-1/default")

    assert response.status_code == 502
    assert response.json()["status"] == "failed"


def test_initiate_endpoint_rejects_conflicted_session(container) -> None:
    store = container.status_store
    store.initiate("user-1", "default")
    store.transition("user-1", "default", ConnectionState.CONFLICT)
    client = TestClient(create_app(container))

    response = client.post("/initiate/user-1/default")

    assert response.status_code == 409
    data = response.json()
    assert data["success"] is False
    assert data["status"] == "conflict"


def test_blank_identifiers_are_rejected(container) -> None:
    client = TestClient(create_app(container))

    assert client.post("/initiate/%20/default").status_code == 400
    assert client.get("/status/user-1/%20").status_code == 400
    assert client.get("/status-all/%20").status_code == 400
    assert client.get("/status-stream/%20").status_code == 400


def test_disconnect_endpoint(container, protocol_client) -> None:
    container.status_store.initiate("user-1", "default")
    client = TestClient(create_app(container))

    response = client.post("/disconnect/user-1/default")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "userId": "user-1",
        "sessionId": "default",
    }
    assert protocol_client.stopped == [("user-1", "default", False)]
    record = container.status_store.get("user-1", "default")
    assert record.state is ConnectionState.DISCONNECTED


def test_status_endpoint_for_unknown_session(container) -> None:
    client = TestClient(create_app(container))

    data = client.get("/status/user-1/default").json()

    assert data["status"] == "disconnected"
    assert data["connected"] is False
    assert data["socketState"] == "not_found"


def test_status_endpoint_exposes_qr_only_while_required(container) -> None:
    store = container.status_store
    store.initiate("user-1", "default")
    store.transition("user-1", "default", ConnectionState.QR_REQUIRED, qr_code="2@qr")
    client = TestClient(create_app(container))

    pairing = client.get("/status/user-1/default").json()
    store.transition("user-1", "default", ConnectionState.CONNECTED)
    connected = client.get("/status/user-1/default").json()

    assert pairing["qrCode"] == "2@qr"
    assert pairing["connecting"] is False
    assert connected["qrCode"] is None
    assert connected["connected"] is True
    assert connected["wsReady"] is True


def test_status_all_returns_every_session_of_user(container) -> None:
    store = container.status_store
    store.initiate("user-1", "default")
    store.initiate("user-1", "work")
    store.transition("user-1", "work", ConnectionState.CONNECTED)
    store.initiate("user-2", "default")
    client = TestClient(create_app(container))

    data = client.get("/status-all/user-1").json()

    assert data["success"] is True
    assert data["userId"] == "user-1"
    assert set(data["sessions"]) == {"default", "work"}
    assert data["sessions"]["work"]["status"] == "connected"
    assert data["sessions"]["default"]["connecting"] is True


def test_status_all_for_user_without_sessions(container) -> None:
    client = TestClient(create_app(container))

    data = client.get("/status-all/nobody").json()

    assert data["sessions"] == {}


def test_health_endpoint(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/health").json() == {"status": "ok"}
