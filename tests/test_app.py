import json
import os

import pytest

import flask2048
from flask2048.app import app, direction_for_key, tile_color, BIG_TILE_COLOR, EMPTY_TILE_COLOR
from flask2048.game2048 import copy_board, move_board


def empty():
    return [[0] * 4 for _ in range(4)]


def game_data(board, score=0, won=False, history=None):
    return {
        "board": copy_board(board),
        "score": score,
        "moves": 0,
        "won": won,
        "history": history or [],
    }


@pytest.fixture
def best_path(tmp_path):
    return tmp_path / "best.json"


@pytest.fixture
def client(best_path):
    app.config.update(TESTING=True, BEST_SCORE_PATH=str(best_path), GAME_SEED=1234)
    app.extensions.pop("game2048_rng", None)
    with app.test_client() as client:
        yield client
    app.extensions.pop("game2048_rng", None)


def set_game(client, data):
    with client.session_transaction() as sess:
        sess["game"] = data


def get_game(client):
    with client.session_transaction() as sess:
        return sess["game"]


def tiles(board):
    return [val for row in board for val in row if val]


def two_twos():
    board = empty()
    board[0][0] = 2
    board[0][1] = 2
    return board


def test_direction_for_key():
    assert direction_for_key("ArrowUp") == "up"
    assert direction_for_key("ArrowRight") == "right"
    assert direction_for_key("a") == "left"
    assert direction_for_key("S") == "down"
    assert direction_for_key("x") is None
    assert direction_for_key("") is None
    assert direction_for_key(None) is None


def test_tile_color():
    assert tile_color(2) == "#eee4da"
    assert tile_color(2048) == "#edc22e"
    assert tile_color(4096) == BIG_TILE_COLOR
    assert tile_color(0) == EMPTY_TILE_COLOR


def test_index_starts_new_game(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Score: 0" in resp.data
    game = get_game(client)
    assert len(tiles(game["board"])) == 2
    assert game["score"] == 0


def test_move_with_direction(client, best_path):
    set_game(client, game_data(two_twos()))
    resp = client.post("/move", data={"direction": "left"})
    assert resp.status_code == 302

    game = get_game(client)
    assert game["board"][0][0] == 4
    assert game["score"] == 4
    assert len(tiles(game["board"])) == 2
    assert json.loads(best_path.read_text()) == {"bestScore": 4}


@pytest.mark.parametrize("key", ["ArrowLeft", "a"])
def test_move_with_key(client, key):
    set_game(client, game_data(two_twos()))
    client.post("/move", data={"key": key})
    assert get_game(client)["score"] == 4


def test_unknown_input_is_ignored(client):
    set_game(client, game_data(two_twos()))
    client.post("/move", data={"key": "q"})
    game = get_game(client)
    assert game["board"] == two_twos()
    assert game["score"] == 0


def test_noop_move_flashes_message(client):
    board = empty()
    board[0][0] = 2
    set_game(client, game_data(board))
    resp = client.post("/move", data={"direction": "left"}, follow_redirects=True)
    assert b"No move available in that direction." in resp.data
    assert get_game(client)["board"] == board


def test_undo(client):
    set_game(client, game_data(two_twos()))
    client.post("/move", data={"direction": "left"})
    client.post("/undo")
    game = get_game(client)
    assert game["board"] == two_twos()
    assert game["score"] == 0

    resp = client.post("/undo", follow_redirects=True)
    assert b"No moves to undo." in resp.data


def test_win_ends_game(client):
    board = empty()
    board[0][0] = 1024
    board[0][1] = 1024
    set_game(client, game_data(board))
    resp = client.post("/move", data={"direction": "left"}, follow_redirects=True)
    assert b"You reached the 2048 tile!" in resp.data

    before = get_game(client)
    client.post("/move", data={"direction": "right"})
    assert get_game(client)["board"] == before["board"]


def test_reset_keeps_best_score(client):
    set_game(client, game_data(two_twos()))
    client.post("/move", data={"direction": "left"})
    client.post("/reset")

    game = get_game(client)
    assert game["score"] == 0
    assert game["history"] == []
    resp = client.get("/")
    assert b"Best: 4" in resp.data


def test_reset_best(client, best_path):
    best_path.write_text('{"bestScore": 999}')
    client.post("/reset")
    client.post("/reset-best")
    assert json.loads(best_path.read_text()) == {"bestScore": 0}
    assert b"Best: 0" in client.get("/").data


def test_invalid_session_game_is_replaced(client):
    set_game(client, {"board": [[3]]})
    resp = client.get("/")
    assert resp.status_code == 200
    assert len(tiles(get_game(client)["board"])) == 2


def test_api_state(client, best_path):
    best_path.write_text('{"bestScore": 64}')
    set_game(client, game_data(two_twos()))
    data = client.get("/api/state").get_json()
    assert data["board"] == two_twos()
    assert data["score"] == 0
    assert data["bestScore"] == 64
    assert data["status"] == "ongoing"
    assert data["canUndo"] is False


def test_api_move(client):
    set_game(client, game_data(two_twos()))
    data = client.post("/api/move", json={"direction": "left"}).get_json()
    assert data["moved"] is True
    assert data["score"] == 4
    assert data["canUndo"] is True

    # 第二步的结果由第一步之后的棋盘决定
    board = get_game(client)["board"]
    expected, gain = move_board(board, "right")
    assert expected != board

    data = client.post("/api/move", json={"key": "ArrowRight"}).get_json()
    assert data["moved"] is True
    assert data["moves"] == 2
    assert data["score"] == 4 + gain
    changed = [
        (r, c)
        for r in range(4)
        for c in range(4)
        if data["board"][r][c] != expected[r][c]
    ]
    assert len(changed) == 1
    r, c = changed[0]
    assert expected[r][c] == 0
    assert data["board"][r][c] in (2, 4)


def test_api_move_rejects_bad_input(client):
    resp = client.post("/api/move", json={"direction": "sideways"})
    assert resp.status_code == 400
    assert "error" in resp.get_json()

    resp = client.post("/api/move", data="not json")
    assert resp.status_code == 400


def test_api_move_on_finished_game(client):
    board = [
        [2, 4, 2, 4],
        [4, 2, 4, 2],
        [2, 4, 2, 4],
        [4, 2, 4, 2],
    ]
    set_game(client, game_data(board))
    data = client.post("/api/move", json={"direction": "left"}).get_json()
    assert data["moved"] is False
    assert data["status"] == "lost"
    assert data["message"] == "Game over! No moves left."


def test_template_lives_inside_the_package():
    # 模板作为包数据随包一起安装
    package_dir = os.path.dirname(os.path.abspath(flask2048.__file__))
    assert os.path.abspath(app.root_path) == package_dir
    assert os.path.isfile(os.path.join(package_dir, "templates", "index.html"))
