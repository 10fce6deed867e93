from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for
from flask2048.game2048 import (
    DIRECTIONS,
    LOST,
    ONGOING,
    WON,
    Game2048,
)
from flask2048.score_store import BestScoreStore
from typing import Any, Dict, Optional
import os
import random

app = Flask(__name__)
app.config.from_mapping(
    SECRET_KEY="change_this_to_a_random_secret_key",
    MAX_HISTORY=20,        # 撤回最多保存多少步
    GAME_SEED=None,        # 随机种子，None 表示使用系统随机源
    BEST_SCORE_PATH=None,  # 最高分文件，默认放在 instance 目录
    LOG_LEVEL="INFO",
)
app.config.from_envvar("GAME2048_SETTINGS", silent=True)
app.logger.setLevel(app.config["LOG_LEVEL"])

# 键盘输入 -> 移动方向
KEY_DIRECTIONS = {
    "ArrowUp": "up",
    "ArrowDown": "down",
    "ArrowLeft": "left",
    "ArrowRight": "right",
    "w": "up",
    "s": "down",
    "a": "left",
    "d": "right",
}

# 方块颜色
TILE_COLORS = {
    2: "#eee4da",
    4: "#ede0c8",
    8: "#f2b179",
    16: "#f59563",
    32: "#f67c5f",
    64: "#f65e3b",
    128: "#edcf72",
    256: "#edcc61",
    512: "#edc850",
    1024: "#edc53f",
    2048: "#edc22e",
}
EMPTY_TILE_COLOR = "#cdc1b4"
BIG_TILE_COLOR = "#3c3a32"

STATUS_MESSAGES = {
    ONGOING: "",
    WON: "Congratulations! You reached the 2048 tile!",
    LOST: "Game over! No moves left.",
}


def direction_for_key(key: Optional[str]) -> Optional[str]:
    """把按键名转换为移动方向，无法识别时返回 None。"""
    if not isinstance(key, str) or not key:
        return None
    if key in KEY_DIRECTIONS:
        return KEY_DIRECTIONS[key]
    return KEY_DIRECTIONS.get(key.lower())


def resolve_direction(direction: Optional[str], key: Optional[str]) -> Optional[str]:
    """优先使用显式方向，其次使用按键。"""
    if direction in DIRECTIONS:
        return direction
    return direction_for_key(key)


def tile_color(value: int) -> str:
    """方块背景色，超过 2048 的数字统一用深色。"""
    if value == 0:
        return EMPTY_TILE_COLOR
    return TILE_COLORS.get(value, BIG_TILE_COLOR)


def tile_text_color(value: int) -> str:
    """2 和 4 用深色字，其余用浅色字。"""
    return "#776e65" if value in (2, 4) else "#f9f6f2"


@app.context_processor
def inject_tile_helpers() -> Dict[str, Any]:
    return {"tile_color": tile_color, "tile_text_color": tile_text_color}


def get_rng() -> random.Random:
    """整个应用共用一个随机源，配置了 GAME_SEED 时结果可复现。"""
    rng = app.extensions.get("game2048_rng")
    if rng is None:
        rng = random.Random(app.config["GAME_SEED"])
        app.extensions["game2048_rng"] = rng
    return rng


def get_best_score_store() -> BestScoreStore:
    path = app.config["BEST_SCORE_PATH"]
    if not path:
        path = os.path.join(app.instance_path, "best_score.json")
    return BestScoreStore(path)


def start_new_game(best_score: int) -> Game2048:
    """初始化一局新游戏。"""
    game = Game2048(
        rng=get_rng(),
        best_score=best_score,
        max_history=app.config["MAX_HISTORY"],
    )
    game.reset()
    app.logger.info("Started a new game")
    return game


def load_game() -> Game2048:
    """从 session 恢复当前游戏，没有或数据损坏时开始新游戏。"""
    best_score = get_best_score_store().load()
    g.saved_best_score = best_score

    data = session.get("game")
    if data is not None:
        try:
            return Game2048.from_dict(
                data,
                rng=get_rng(),
                best_score=best_score,
                max_history=app.config["MAX_HISTORY"],
            )
        except (ValueError, TypeError) as e:
            app.logger.warning("Discarding invalid game state in session: %s", e)

    game = start_new_game(best_score)
    save_game(game)
    return game


def save_game(game: Game2048) -> None:
    """保存游戏到 session，最高分变化时写回文件。"""
    session["game"] = game.to_dict()

    if game.best_score > g.get("saved_best_score", 0):
        get_best_score_store().save(game.best_score)
        g.saved_best_score = game.best_score
        app.logger.info("New best score: %d", game.best_score)


def game_state(game: Game2048) -> Dict[str, Any]:
    """页面和 JSON 接口共用的游戏状态。"""
    return {
        "board": game.rows(),
        "score": game.score,
        "bestScore": game.best_score,
        "status": game.status,
        "message": STATUS_MESSAGES[game.status],
        "moves": game.moves,
        "maxTile": game.max_tile,
        "canUndo": game.can_undo,
    }


@app.route("/")
def index():
    """游戏主页面。"""
    game = load_game()
    state = game_state(game)
    return render_template(
        "index.html",
        board=state["board"],
        score=state["score"],
        best_score=state["bestScore"],
        status=state["status"],
        message=state["message"],
        moves=state["moves"],
        max_tile=state["maxTile"],
        can_undo=state["canUndo"],
        max_history=app.config["MAX_HISTORY"],
    )


def apply_move(game: Game2048, direction: str) -> bool:
    """执行一回合并记录日志，返回是否真的移动了。"""
    moved = game.play(direction)
    if moved:
        app.logger.debug("Moved %s, score %d", direction, game.score)
        if game.status == WON:
            app.logger.info("Reached %d with score %d", game.max_tile, game.score)
        elif game.status == LOST:
            app.logger.info("Game over with score %d", game.score)
    save_game(game)
    return moved


@app.route("/move", methods=["POST"])
def move():
    """处理移动操作。"""
    direction = resolve_direction(request.form.get("direction"), request.form.get("key"))
    game = load_game()

    if direction is None or game.status != ONGOING:
        return redirect(url_for("index"))

    if not apply_move(game, direction):
        flash("No move available in that direction.")

    return redirect(url_for("index"))


@app.route("/undo", methods=["POST"])
def undo():
    """撤回一步。"""
    game = load_game()
    if not game.undo():
        flash("No moves to undo.")
        return redirect(url_for("index"))

    save_game(game)
    return redirect(url_for("index"))


@app.route("/reset", methods=["POST"])
def reset():
    """重新开始一局游戏（保留最高分）。"""
    best_score = get_best_score_store().load()
    g.saved_best_score = best_score
    save_game(start_new_game(best_score))
    return redirect(url_for("index"))


@app.route("/reset-best", methods=["POST"])
def reset_best():
    """最高分清零，当前这局的分数仍然计入。"""
    get_best_score_store().reset()
    app.logger.info("Best score reset")
    save_game(load_game())
    return redirect(url_for("index"))


@app.route("/api/state")
def api_state():
    return jsonify(game_state(load_game()))


@app.route("/api/move", methods=["POST"])
def api_move():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    direction = resolve_direction(data.get("direction"), data.get("key"))
    if direction is None:
        return jsonify({"error": "direction must be one of: " + ", ".join(DIRECTIONS)}), 400

    game = load_game()
    moved = apply_move(game, direction)
    state = game_state(game)
    state["moved"] = moved
    return jsonify(state)


if __name__ == "__main__":
    app.run(debug=True)
