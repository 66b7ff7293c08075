"""Calibration prompts: one instruction template per outline section.

The backing file keeps the mapping under a single ``promptsCalibracion`` key::

    {"promptsCalibracion": {"titulo": "Evalúa este título: [transcripción]", ...}}

It is read once at startup (a missing or malformed file aborts the start) and
rewritten wholesale on every update.
"""

import json
from pathlib import Path
from typing import Dict, Mapping

from utils.error_handler import CalibrationConfigError
from utils.logging import get_logger

logger = get_logger(__name__)

ROOT_KEY = "promptsCalibracion"


class CalibrationStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._prompts: Dict[str, str] = {}

    @property
    def prompts(self) -> Dict[str, str]:
        return dict(self._prompts)

    def get(self, section: str | None) -> str:
        if not section:
            return ""
        return self._prompts.get(section) or ""

    def load(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise CalibrationConfigError(f"Calibration file not found: {self.path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise CalibrationConfigError(f"Could not read {self.path}: {e}") from e

        prompts = data.get(ROOT_KEY) if isinstance(data, dict) else None
        if not isinstance(prompts, dict):
            raise CalibrationConfigError(f"'{ROOT_KEY}' missing from {self.path}")
        bad = sorted(str(k) for k, v in prompts.items() if not isinstance(v, str))
        if bad:
            raise CalibrationConfigError(f"Non-text prompts in {self.path}: {', '.join(bad)}")

        self._prompts = dict(prompts)
        logger.info(f"Loaded {len(self._prompts)} calibration prompts from {self.path}")
        return self.prompts

    def save(self, prompts: Mapping[str, str] | None = None) -> None:
        if prompts is not None:
            self._prompts = dict(prompts)
        payload = {ROOT_KEY: self._prompts}
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Calibration prompts saved to {self.path}")

    def merge(self, partial: Mapping[str, str]) -> Dict[str, str]:
        """Shallow-merge ``partial`` over the current prompts and persist."""
        self._prompts = {**self._prompts, **dict(partial)}
        self.save()
        return self.prompts
