"""Tests for the FastAPI server."""

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relayhub import ConnectionRegistry, RelayConfig


@pytest.fixture()
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture()
def client(registry: ConnectionRegistry):
    from server.api import create_app

    app = create_app(RelayConfig(), registry)
    with TestClient(app) as c:
        yield c


def _ready(ws, owner: str) -> None:
    """Round-trip a message to ourselves so the server has registered the socket."""
    ws.send_json({"message": "ready", "recipient": owner})
    assert ws.receive_json() == {"message": "ready", "from": owner}


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestDemoPage:
    def test_defaults(self, client: TestClient):
        r = client.get("/")
        assert r.status_code == 200
        assert "text/html" in r.headers["content-type"]
        assert 'const user_id = "a";' in r.text
        assert 'value="b"' in r.text
        assert '"/websocket/messaging"' in r.text

    def test_query_params(self, client: TestClient):
        r = client.get("/", params={"user_id": "carol", "recipient": "dave"})
        assert 'const user_id = "carol";' in r.text
        assert 'value="dave"' in r.text

    def test_values_are_escaped(self, client: TestClient):
        r = client.get("/", params={"user_id": "</script><b>", "recipient": '"><i>'})
        assert "</script><b>" not in r.text
        assert '"><i>' not in r.text

    def test_owner_param_is_escaped(self):
        from server.demo_routes import render_page

        page = render_page("a", "b", "/websocket/messaging", "uid'</script>")
        assert "uid'</script>" not in page
        assert 'encodeURIComponent("uid\'<\\/script>")' in page

    def test_custom_owner_param(self, registry: ConnectionRegistry):
        from server.api import create_app

        app = create_app(RelayConfig(owner_param="uid"), registry)
        with TestClient(app) as c:
            assert 'encodeURIComponent("uid")' in c.get("/").text


class TestHealth:
    def test_health(self, client: TestClient, registry: ConnectionRegistry):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ok"
        assert data["connections"] == 0


class TestWebSocket:
    def test_register_and_remove_on_close(self, client: TestClient, registry: ConnectionRegistry):
        with client.websocket_connect("/websocket/messaging?user_id=a") as ws:
            _ready(ws, "a")
            assert registry.count("a", "messaging") == 1
            assert client.get("/health").json()["connections"] == 1
        assert _wait_until(lambda: registry.count() == 0)

    def test_missing_owner_is_rejected(self, client: TestClient, registry: ConnectionRegistry):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/websocket/messaging") as ws:
                ws.receive_text()
        assert registry.count() == 0

    def test_directed_relay(self, client: TestClient):
        with client.websocket_connect("/websocket/messaging?user_id=a") as ws_a:
            with client.websocket_connect("/websocket/messaging?user_id=b") as ws_b:
                _ready(ws_a, "a")
                _ready(ws_b, "b")
                ws_a.send_json({"message": "hi", "recipient": "b"})
                assert ws_b.receive_json() == {"message": "hi", "from": "a"}

    def test_broadcast_reaches_every_owner(self, client: TestClient):
        with client.websocket_connect("/websocket/messaging?user_id=a") as ws_a:
            with client.websocket_connect("/websocket/messaging?user_id=b") as ws_b:
                with client.websocket_connect("/websocket/alerts?user_id=a") as ws_other:
                    _ready(ws_a, "a")
                    _ready(ws_b, "b")
                    _ready(ws_other, "a")

                    r = client.post("/broadcast", data={"message": "ping"})
                    assert r.status_code == 200
                    assert r.json() == {"delivered": 2, "failed": 0}
                    assert ws_a.receive_json() == {"message": "ping"}
                    assert ws_b.receive_json() == {"message": "ping"}

    def test_handler_error_closes_with_internal_error(
        self, client: TestClient, registry: ConnectionRegistry, monkeypatch
    ):
        import server.api as api_mod

        def exploding_handler(registry, owner, key):
            def on_data(data):
                raise RuntimeError(f"cannot handle {data!r}")

            return on_data

        monkeypatch.setattr(api_mod, "make_relay_handler", exploding_handler)
        with client.websocket_connect("/websocket/messaging?user_id=a") as ws:
            ws.send_text("anything")
            with pytest.raises(WebSocketDisconnect) as info:
                ws.receive_text()
        assert info.value.code == 1011
        assert registry.count() == 0


class TestBroadcast:
    def test_no_listeners(self, client: TestClient):
        r = client.post("/broadcast", data={"message": "anyone?"})
        assert r.status_code == 200
        assert r.json() == {"delivered": 0, "failed": 0}

    def test_json_body(self, client: TestClient):
        with client.websocket_connect("/websocket/messaging?user_id=a") as ws:
            _ready(ws, "a")
            r = client.post("/broadcast", json={"message": "from json"})
            assert r.json()["delivered"] == 1
            assert ws.receive_json() == {"message": "from json"}

    def test_missing_message(self, client: TestClient):
        assert client.post("/broadcast", data={}).status_code == 422
        assert client.post("/broadcast", json={"text": "x"}).status_code == 422

    def test_malformed_json_body(self, client: TestClient):
        r = client.post(
            "/broadcast",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert r.status_code == 422
