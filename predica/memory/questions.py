"""Initial questions asked before writing a sermon (theme, purpose, audience, time)."""

import json
from pathlib import Path
from typing import Dict

from utils.logging import get_logger

logger = get_logger(__name__)

QUESTION_FIELDS = ("tema", "proposito", "audiencia", "tiempo")


def _blank() -> Dict[str, str]:
    return {f: "" for f in QUESTION_FIELDS}


class QuestionsStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.answers: Dict[str, str] = _blank()

    def save(self, answers: Dict[str, str]) -> Dict[str, str]:
        self.answers = {f: answers[f] for f in QUESTION_FIELDS}
        logger.info(f"Initial questions stored: {self.answers}")
        return self.answers

    def view(self) -> Dict[str, str]:
        # Always blank, whatever was saved. Kept as the front-end expects it.
        return _blank()

    def clear(self) -> None:
        """Reset the answers and write the empty set to disk."""
        self.answers = _blank()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.answers, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Initial questions cleared ({self.path})")
