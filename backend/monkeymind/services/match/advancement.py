"""Question advancement for running matches.

Per match the controller moves through::

    countdown -> awaiting_answers -> advance_pending -> awaiting_answers ... -> ended

Two timers can move a question on: the fallback timer armed when the
question is revealed (time limit + buffer) and the grace timer armed once
every connected player has answered. Only one handle is outstanding per
match at a time, and both paths finish in ``commit_advance``, which
refuses to advance an index that has already moved.
"""

from typing import Callable, Optional

from flask import current_app

from .errors import ConflictError, MatchNotActive
from .questions import Question
from .store import ADVANCE_PENDING, AWAITING_ANSWERS, COUNTDOWN, ENDED, MatchState


class AdvancementController:
    def __init__(self, store, scheduler, gateway,
                 on_advanced: Callable[[str, int], None],
                 on_exhausted: Callable[[str], None],
                 grace_sec: float = 3.0, fallback_buffer_sec: float = 5.0):
        self.store = store
        self.scheduler = scheduler
        self.gateway = gateway
        self.on_advanced = on_advanced
        self.on_exhausted = on_exhausted
        self.grace_sec = grace_sec
        self.fallback_buffer_sec = fallback_buffer_sec

    def now_ms(self) -> int:
        return int(self.scheduler.now() * 1000)

    def cancel(self, state: MatchState) -> None:
        handle = state.pending_advance_handle
        state.pending_advance_handle = None
        if handle is not None:
            handle.cancel()

    def schedule_first_question(self, match_key: str, delay: float) -> None:
        state = self.store.get(match_key)
        if state is None:
            return
        with state.lock:
            self.cancel(state)
            state.phase = COUNTDOWN
            state.advancement_pending = True
            state.pending_advance_handle = self.scheduler.schedule(delay, self._on_countdown, match_key)

    def _on_countdown(self, match_key: str) -> None:
        self.begin_question(match_key)

    def begin_question(self, match_key: str) -> Optional[Question]:
        """Reveal the question at the current index and arm its fallback timer."""
        state = self.store.get(match_key)
        if state is None or not state.is_active:
            current_app.logger.info(f"[question-skip] lobby={match_key} no active match")
            return None
        with state.lock:
            question = state.current_question
            if question is None:
                return None
            self.cancel(state)
            index = state.question_index
            state.current_question_started_at_ms = self.now_ms()
            state.advancement_pending = False
            state.phase = AWAITING_ANSWERS
            state.pending_advance_handle = self.scheduler.schedule(
                question.time_limit_seconds + self.fallback_buffer_sec, self._on_fallback, match_key, index
            )
            self.gateway.new_question(match_key, question, index + 1, state.total_questions)
        current_app.logger.info(
            f"[question-sent] lobby={match_key} question={index + 1}/{state.total_questions} id={question.id}"
        )
        return question

    def evaluate(self, match_key: str, question_index: int, answered_count: int, active_count: int) -> bool:
        """Fast path: arm the grace timer once every connected player has answered.

        Returns True only for the caller that armed it.
        """
        if active_count <= 0 or answered_count < active_count:
            return False
        state = self.store.get(match_key)
        if state is None or not state.is_active:
            return False
        with state.lock:
            if state.advancement_pending or state.question_index != question_index:
                return False
            state.advancement_pending = True
            state.phase = ADVANCE_PENDING
            self.cancel(state)
            state.pending_advance_handle = self.scheduler.schedule(
                self.grace_sec, self._on_grace, match_key, question_index
            )
        current_app.logger.info(
            f"[fast-path] lobby={match_key} question={question_index + 1} answered={answered_count}/{active_count} grace={self.grace_sec}s"
        )
        return True

    def _on_fallback(self, match_key: str, question_index: int) -> None:
        state = self.store.get(match_key)
        if state is None:
            return
        with state.lock:
            if state.advancement_pending or state.question_index != question_index:
                return
            state.advancement_pending = True
            current_app.logger.info(f"[fallback] lobby={match_key} question={question_index + 1} timed out")
            self.commit_advance(match_key, question_index)

    def _on_grace(self, match_key: str, question_index: int) -> None:
        self.commit_advance(match_key, question_index)

    def skip_question(self, match_key: str) -> bool:
        state = self.store.get(match_key)
        if state is None or not state.is_active:
            raise MatchNotActive()
        with state.lock:
            if state.phase == COUNTDOWN:
                raise ConflictError('Game has not shown its first question yet')
            state.advancement_pending = True
            return self.commit_advance(match_key, state.question_index)

    def commit_advance(self, match_key: str, expected_index: int) -> bool:
        """Move past ``expected_index``; a no-op if that already happened."""
        state = self.store.get(match_key)
        if state is None:
            return False
        with state.lock:
            if not state.is_active or state.question_index != expected_index:
                current_app.logger.info(
                    f"[advance-skip] lobby={match_key} expected={expected_index} actual={state.question_index}"
                )
                return False
            self.cancel(state)
            state.advancement_pending = True
            state.question_index += 1
            new_index = state.question_index
            exhausted = new_index >= state.total_questions
            if exhausted:
                state.phase = ENDED
        current_app.logger.info(f"[advance] lobby={match_key} {expected_index} -> {new_index}")
        self.on_advanced(match_key, new_index)
        if exhausted:
            self.on_exhausted(match_key)
        else:
            self.begin_question(match_key)
        return True
