import random
from typing import Any, Dict, List, Optional, Tuple

SIZE = 4  # 棋盘大小：4x4
WIN_TILE = 2048
FOUR_PROBABILITY = 0.1  # 新数字为 4 的概率

DIRECTIONS = ("up", "down", "left", "right")

# 游戏状态
ONGOING = "ongoing"
WON = "won"
LOST = "lost"

Board = List[List[int]]
Row = List[int]
Snapshot = Dict[str, Any]


def new_board() -> Board:
    """创建一个空棋盘。"""
    return [[0] * SIZE for _ in range(SIZE)]


def copy_board(board: Board) -> Board:
    """深拷贝棋盘。"""
    return [row[:] for row in board]


def add_random_tile(board: Board, rng: Optional[random.Random] = None) -> Optional[Tuple[int, int]]:
    """
    在空格随机生成一个 2 或 4
    返回生成的位置 (r, c)，如果棋盘已满返回 None
    不传 rng 时使用一个新的随机源
    """
    if rng is None:
        rng = random.Random()
    empty_cells = [
        (r, c)
        for r in range(SIZE)
        for c in range(SIZE)
        if board[r][c] == 0
    ]
    if not empty_cells:
        return None

    r, c = rng.choice(empty_cells)
    board[r][c] = 4 if rng.random() < FOUR_PROBABILITY else 2
    return r, c


def compress_and_merge_row(row: Row) -> Tuple[Row, int]:
    """
    向左挤压并合并一行，同时返回本行增加的分数。
    合并出的数字在同一次移动中不会再次合并。
    例如: [2, 0, 2, 4] -> [4, 4, 0, 0], score_gain = 4
          [2, 2, 2, 2] -> [4, 4, 0, 0], score_gain = 8
    """
    arr = [x for x in row if x != 0]
    new_row: Row = []
    score_gain = 0
    i = 0

    while i < len(arr):
        if i + 1 < len(arr) and arr[i] == arr[i + 1]:
            merged = arr[i] * 2
            new_row.append(merged)
            score_gain += merged
            i += 2
        else:
            new_row.append(arr[i])
            i += 1

    new_row += [0] * (len(row) - len(new_row))
    return new_row, score_gain


def move_left(board: Board) -> Tuple[Board, int]:
    """整盘向左移动。"""
    new_board_state: Board = []
    total_gain = 0
    for row in board:
        new_row, gain = compress_and_merge_row(row)
        new_board_state.append(new_row)
        total_gain += gain
    return new_board_state, total_gain


def reverse_rows(board: Board) -> Board:
    """每一行做反转。"""
    return [list(reversed(row)) for row in board]


def transpose(board: Board) -> Board:
    """矩阵转置。"""
    return [list(row) for row in zip(*board)]


def move_right(board: Board) -> Tuple[Board, int]:
    """整盘向右移动。"""
    reversed_board = reverse_rows(board)
    moved, gain = move_left(reversed_board)
    return reverse_rows(moved), gain


def move_up(board: Board) -> Tuple[Board, int]:
    """整盘向上移动。"""
    transposed = transpose(board)
    moved, gain = move_left(transposed)
    return transpose(moved), gain


def move_down(board: Board) -> Tuple[Board, int]:
    """整盘向下移动。"""
    transposed = transpose(board)
    moved, gain = move_right(transposed)
    return transpose(moved), gain


# 移动方向映射
MOVE_FUNCTIONS = {
    "left": move_left,
    "right": move_right,
    "up": move_up,
    "down": move_down,
}


def move_board(board: Board, direction: str) -> Tuple[Board, int]:
    """按方向移动整盘，返回新棋盘和得分。未知方向抛出 ValueError。"""
    move_func = MOVE_FUNCTIONS.get(direction)
    if move_func is None:
        raise ValueError(
            f"Invalid direction: {direction!r}. Must be one of {', '.join(DIRECTIONS)}"
        )
    return move_func(board)


def is_full(board: Board) -> bool:
    """棋盘是否没有空格。"""
    return all(val != 0 for row in board for val in row)


def has_tile(board: Board, value: int) -> bool:
    """棋盘上是否有指定数字。"""
    return any(val == value for row in board for val in row)


def can_move(board: Board) -> bool:
    """判断是否还能继续游戏。"""
    for r in range(SIZE):
        for c in range(SIZE):
            if board[r][c] == 0:
                return True

    for r in range(SIZE):
        for c in range(SIZE - 1):
            if board[r][c] == board[r][c + 1]:
                return True

    for c in range(SIZE):
        for r in range(SIZE - 1):
            if board[r][c] == board[r + 1][c]:
                return True

    return False


def get_max_tile(board: Board) -> int:
    """取得当前最大的数字。"""
    return max(max(row) for row in board)


def tile_sum(board: Board) -> int:
    """所有数字之和。"""
    return sum(sum(row) for row in board)


def validate_board(board: Any) -> Board:
    """
    检查外部传入的棋盘（例如 session 中保存的）是否合法，
    合法时返回整数化后的副本，否则抛出 ValueError。
    """
    if not isinstance(board, list) or len(board) != SIZE:
        raise ValueError("board must be a list of %d rows" % SIZE)

    result: Board = []
    for row in board:
        if not isinstance(row, list) or len(row) != SIZE:
            raise ValueError("each board row must hold %d cells" % SIZE)
        new_row: Row = []
        for val in row:
            if isinstance(val, bool) or not isinstance(val, int):
                raise ValueError(f"tile value must be an int, got {val!r}")
            # 0 或 >= 2 的 2 的幂
            if val != 0 and (val < 2 or val & (val - 1)):
                raise ValueError(f"tile value must be 0 or a power of two, got {val}")
            new_row.append(val)
        result.append(new_row)
    return result


class Game2048:
    """
    一局 2048 游戏：棋盘、分数、最高分、胜利标记和撤回历史。

    引擎本身不做任何 I/O，最高分的持久化由调用方负责：
    构造时传入已保存的最高分，之后读取 best_score 写回即可。
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        best_score: int = 0,
        max_history: Optional[int] = None,
    ) -> None:
        self.rng = rng if rng is not None else random.Random()
        self.best_score = best_score
        self.max_history = max_history  # None 表示不限制撤回步数
        self.board: Board = new_board()
        self.score = 0
        self.moves = 0
        self.won = False
        self.history: List[Snapshot] = []

    def reset(self) -> None:
        """重新开始：清空棋盘、分数和历史，随机出现两个数字。最高分保留。"""
        self.board = new_board()
        self.score = 0
        self.moves = 0
        self.won = False
        self.history = []
        self.spawn_tile()
        self.spawn_tile()

    def tile(self, row: int, col: int) -> int:
        """取得 (row, col) 处的数字，0 表示空格。"""
        return self.board[row][col]

    def rows(self) -> Board:
        """返回棋盘副本，供渲染使用。"""
        return copy_board(self.board)

    @property
    def max_tile(self) -> int:
        return get_max_tile(self.board)

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def _snapshot(self) -> Snapshot:
        return {
            "board": copy_board(self.board),
            "score": self.score,
            "won": self.won,
        }

    def move(self, direction: str) -> bool:
        """
        向指定方向移动一次，不生成新数字。

        棋盘发生变化时保存撤回记录、累加分数并返回 True；
        没有任何数字移动或合并时棋盘和分数保持不变，返回 False。
        """
        new_board_state, gain = move_board(self.board, direction)
        if new_board_state == self.board:
            return False

        self.history.append(self._snapshot())
        if self.max_history is not None and len(self.history) > self.max_history:
            del self.history[: len(self.history) - self.max_history]

        self.board = new_board_state
        self.score += gain
        self.moves += 1
        if self.score > self.best_score:
            self.best_score = self.score
        if not self.won and has_tile(self.board, WIN_TILE):
            self.won = True
        return True

    def spawn_tile(self) -> bool:
        """在随机空格生成 2 或 4；棋盘已满时返回 False。"""
        return add_random_tile(self.board, self.rng) is not None

    def play(self, direction: str) -> bool:
        """
        完整的一回合：移动，若确实移动了再生成新数字。
        游戏已结束（胜利或失败）时忽略输入，返回 False。
        """
        if self.status != ONGOING:
            return False
        if not self.move(direction):
            return False
        self.spawn_tile()
        return True

    def undo(self) -> bool:
        """撤回一步；没有历史记录时返回 False。"""
        if not self.history:
            return False

        last_state = self.history.pop()
        self.board = last_state["board"]
        self.score = last_state["score"]
        self.won = last_state["won"]
        if self.moves > 0:
            self.moves -= 1
        return True

    def is_full(self) -> bool:
        return is_full(self.board)

    def has_won(self) -> bool:
        """是否已经合成过 2048（一次性标记，之后不再重新扫描棋盘）。"""
        return self.won

    def is_game_over(self) -> bool:
        """棋盘已满且任何相邻格子都不相等。"""
        return not can_move(self.board)

    @property
    def status(self) -> str:
        if self.has_won():
            return WON
        if self.is_game_over():
            return LOST
        return ONGOING

    def to_dict(self) -> Dict[str, Any]:
        """转换为可 JSON 序列化的字典（用于保存到 session）。"""
        return {
            "board": copy_board(self.board),
            "score": self.score,
            "moves": self.moves,
            "won": self.won,
            "history": [
                {
                    "board": copy_board(entry["board"]),
                    "score": entry["score"],
                    "won": entry["won"],
                }
                for entry in self.history
            ],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        rng: Optional[random.Random] = None,
        best_score: int = 0,
        max_history: Optional[int] = None,
    ) -> "Game2048":
        """从 to_dict() 的结果恢复一局游戏，数据不合法时抛出 ValueError。"""
        if not isinstance(data, dict):
            raise ValueError("game data must be a dict")

        game = cls(rng=rng, best_score=best_score, max_history=max_history)
        game.board = validate_board(data.get("board"))
        game.score = int(data.get("score", 0))
        game.moves = int(data.get("moves", 0))
        game.won = bool(data.get("won", False))

        history = data.get("history", [])
        if not isinstance(history, list):
            raise ValueError("history must be a list")
        for entry in history:
            if not isinstance(entry, dict):
                raise ValueError("history entries must be dicts")
            game.history.append({
                "board": validate_board(entry.get("board")),
                "score": int(entry.get("score", 0)),
                "won": bool(entry.get("won", False)),
            })
        if max_history is not None and len(game.history) > max_history:
            game.history = game.history[-max_history:]

        if game.score > game.best_score:
            game.best_score = game.score
        return game
