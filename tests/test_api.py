"""HTTP surface, wired to the fake analysis binary through the real lifespan."""

import time

import pytest
from fastapi.testclient import TestClient

from chessprep import main
from chessprep.config import Settings

from conftest import BLACK_FEN, START_FEN, fake_score


@pytest.fixture()
def client(fake_binary, tmp_path, monkeypatch):
    settings = Settings(
        session_binary=fake_binary.path,
        engine_path=fake_binary.engine(),
        workspace_dir=tmp_path / "workspaces",
        debounce_seconds=0.01,
        read_timeout=3.0,
        shutdown_timeout=0.5,
    )
    monkeypatch.setattr(main, "settings", settings)
    with TestClient(main.app) as test_client:
        yield test_client


def wait_for_path_graph(client, timeout=5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        graph = client.get("/workspace/path-graph").json()
        if not graph["is_loading"] or time.monotonic() > deadline:
            return graph
        time.sleep(0.05)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["mode"] == "persistent"
    assert data["binary_available"] is True
    assert data["workspace_loaded"] is False


def test_one_off_analysis(client, fake_binary):
    response = client.post(
        "/analyze",
        json={"fen": BLACK_FEN, "engine_path": fake_binary.engine(), "depth": 9, "multipv": 2},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["fen"] == BLACK_FEN
    assert data["depth"] == 9
    assert data["score_cp"] == -fake_score(BLACK_FEN)
    assert [line["rank"] for line in data["lines"]] == [1, 2]
    assert data["lines"][0]["san_pv"] == ["e4", "e5"]

    assert client.get("/health").json()["session_state"] == "ready"


def test_one_off_analysis_rejects_bad_input(client, fake_binary, tmp_path):
    response = client.post("/analyze", json={"fen": "  ", "engine_path": str(tmp_path / "nope")})
    assert response.status_code == 422

    response = client.post("/analyze", json={"fen": "not a fen at all", "engine_path": fake_binary.engine()})
    assert response.status_code == 422
    assert fake_binary.calls() == []


def test_no_tree_yet(client):
    assert client.get("/workspace").status_code == 404


def test_tree_editing(client):
    client.put("/workspace/engine", json={"auto_analyze": False})
    response = client.post("/workspace", json={"fen": START_FEN, "moves": ["e2e4", "e7e5"]})
    assert response.status_code == 200
    tree = response.json()
    assert len(tree["nodes"]) == 3
    root_id, e4_id, e5_id = tree["mainline_ids"]
    assert tree["current_id"] == root_id

    assert client.post(f"/workspace/select/{e4_id}").status_code == 200
    response = client.post("/workspace/moves", json={"uci": "c7c5"})
    assert response.status_code == 200
    c5_id = response.json()["current_id"]
    assert len(response.json()["nodes"]) == 4

    assert client.post("/workspace/moves", json={"uci": "e2e4"}).status_code == 422
    assert client.post("/workspace/select/missing").status_code == 404
    assert client.delete(f"/workspace/nodes/{root_id}").status_code == 409
    assert client.delete(f"/workspace/nodes/{e5_id}").status_code == 409

    response = client.put(f"/workspace/nodes/{c5_id}/comment", json={"comment": "Sicilian"})
    assert response.status_code == 200
    response = client.post(f"/workspace/nodes/{c5_id}/annotations", json={"symbol": "!?"})
    node = next(n for n in response.json()["nodes"] if n["id"] == c5_id)
    assert node["comment"] == "Sicilian"
    assert node["nags"] == ["!?"]

    response = client.delete(f"/workspace/nodes/{c5_id}")
    assert response.status_code == 200
    assert response.json()["current_id"] == e4_id
    assert len(response.json()["nodes"]) == 3


def test_workspace_analysis_and_path_graph(client):
    response = client.put("/workspace/engine", json={"auto_analyze": False, "top_lines": 5, "depth": 7})
    assert response.json()["top_lines"] == 3
    client.post("/workspace", json={"fen": START_FEN, "moves": ["e2e4"]})

    response = client.post("/workspace/analyze")
    assert response.status_code == 200
    state = response.json()
    assert state["is_analyzing"] is False
    assert state["analysis"]["fen"] == START_FEN
    assert state["analysis"]["depth"] == 7
    assert len(state["analysis"]["lines"]) == 3

    graph = wait_for_path_graph(client)
    assert graph["error"] is None
    assert [p["ply"] for p in graph["points"]] == [0, 1]
    assert graph["points"][0]["score_cp"] == fake_score(START_FEN)
    assert graph["points"][1]["score_cp"] == -fake_score(BLACK_FEN)

    assert client.get("/workspace/engine").json()["analysis"]["best_move"] == "e2e4"


def test_persistence(client):
    client.put("/workspace/engine", json={"auto_analyze": False})
    tree = client.post("/workspace", json={"moves": ["d2d4"]}).json()

    response = client.post("/workspaces", json={"name": "Queen's pawn"})
    assert response.status_code == 200
    saved = response.json()
    assert saved["node_count"] == 2

    listing = client.get("/workspaces").json()
    assert [item["id"] for item in listing] == [saved["id"]]

    response = client.patch(f"/workspaces/{saved['id']}", json={"name": "1.d4"})
    assert response.json()["name"] == "1.d4"

    client.post("/workspace", json={"fen": BLACK_FEN})
    response = client.post(f"/workspaces/{saved['id']}/load")
    assert response.status_code == 200
    assert response.json()["root_id"] == tree["root_id"]
    assert response.json()["workspace_name"] == "1.d4"

    assert client.delete(f"/workspaces/{saved['id']}").status_code == 204
    assert client.post(f"/workspaces/{saved['id']}/load").status_code == 404
    assert client.get("/workspaces").json() == []
