import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

BEST_SCORE_KEY = "bestScore"


class BestScoreStore:
    """把最高分保存为一个 JSON 文件中的单个整数：{"bestScore": n}。"""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> int:
        """读取最高分，文件不存在或内容损坏时返回 0。"""
        if not os.path.exists(self.path):
            return 0
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read best score from %s: %s", self.path, e)
            return 0

        value = data.get(BEST_SCORE_KEY, 0) if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            logger.warning("Ignoring malformed best score in %s: %r", self.path, data)
            return 0
        return value

    def save(self, value: int) -> None:
        """
        先写同目录下的临时文件再替换目标文件，
        读取方不会看到写了一半的内容，写入失败时旧值保留。
        """
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=".best_score-", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({BEST_SCORE_KEY: int(value)}, f)
            os.replace(tmp_path, self.path)
        except OSError:
            logger.exception("Error saving best score to %s", self.path)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("Saved best score %d to %s", value, self.path)

    def reset(self) -> None:
        """最高分清零。"""
        self.save(0)
