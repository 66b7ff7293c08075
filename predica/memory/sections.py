"""In-process cache of the latest transcribed text per outline section.

State is partitioned by a session key (the ``X-Session-Id`` header sent by the
front-end) so two people working at the same time never see each other's
sections. Nothing here is persisted; a restart starts every session empty.

Only writes create a session. At most ``max_sessions`` are kept; the least
recently used one is dropped when a new session would exceed the cap.
"""

from collections import OrderedDict
from typing import Dict

from .models import SECTIONS

DEFAULT_SESSION = "default"
DEFAULT_MAX_SESSIONS = 1000


class SectionStateCache:
    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        self.max_sessions = max(1, max_sessions)
        self._sessions: "OrderedDict[str, Dict[str, str]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def _read(self, session_id: str | None) -> Dict[str, str]:
        key = session_id or DEFAULT_SESSION
        state = self._sessions.get(key)
        if state is None:
            return {}
        self._sessions.move_to_end(key)
        return state

    def set_section(self, name: str, text: str, session_id: str | None = None) -> None:
        key = session_id or DEFAULT_SESSION
        if key not in self._sessions:
            while len(self._sessions) >= self.max_sessions:
                self._sessions.popitem(last=False)
            self._sessions[key] = {s: "" for s in SECTIONS}
        self._sessions.move_to_end(key)
        self._sessions[key][name] = text or ""

    def get_section(self, name: str, session_id: str | None = None) -> str:
        return self._read(session_id).get(name, "")

    def all_sections_filled(self, session_id: str | None = None) -> bool:
        """True once every recognised section holds non-blank text.

        Unknown section names may be stored but never count towards this.
        """
        state = self._read(session_id)
        return all(state.get(s, "").strip() for s in SECTIONS)

    def snapshot(self, session_id: str | None = None) -> Dict[str, str]:
        state = self._read(session_id)
        return {s: state.get(s, "") for s in SECTIONS}

    def clear(self) -> None:
        self._sessions.clear()
