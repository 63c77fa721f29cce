import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import ConflictError
from .questions import Question


COUNTDOWN = 'countdown'
AWAITING_ANSWERS = 'awaiting_answers'
ADVANCE_PENDING = 'advance_pending'
ENDED = 'ended'


@dataclass
class MatchState:
    """Authoritative in-memory state of one running match."""
    match_key: str
    questions: List[Question]
    started_at_ms: int
    current_question_started_at_ms: int
    question_index: int = 0
    is_active: bool = True
    advancement_pending: bool = False
    phase: str = AWAITING_ANSWERS
    pending_advance_handle: Optional[object] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None

    @property
    def total_questions(self) -> int:
        return len(self.questions)


class MatchStateStore:
    """Lobby code -> live MatchState. Not persisted; a restart loses everything."""

    def __init__(self):
        self._states: Dict[str, MatchState] = {}
        self._lock = threading.Lock()

    def create(self, match_key: str, state: MatchState) -> MatchState:
        with self._lock:
            if match_key in self._states:
                raise ConflictError(f'Match {match_key} is already running')
            self._states[match_key] = state
        return state

    def get(self, match_key: str) -> Optional[MatchState]:
        return self._states.get(match_key)

    def delete(self, match_key: str) -> Optional[MatchState]:
        with self._lock:
            return self._states.pop(match_key, None)

    def list_active_keys(self) -> List[str]:
        with self._lock:
            return list(self._states.keys())

    def __contains__(self, match_key: str) -> bool:
        return match_key in self._states

    def __len__(self) -> int:
        return len(self._states)
