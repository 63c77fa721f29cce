import json
from datetime import datetime
from typing import List, Optional

from flask import current_app

from monkeymind import db
from monkeymind.models import Answer, Lobby, LobbyPlayer, Match, User
from .advancement import AdvancementController
from .errors import (
    AlreadyAnswered, ConflictError, LobbyAlreadyStarted, LobbyNotFound, MatchNotActive,
    NotEnoughPlayers, PlayerNotInMatch, StaleQuestion, ValidationError,
)
from .questions import QuestionProvider
from .scoring import ScoreResult, score_answer
from .store import MatchState, MatchStateStore


class MatchLifecycle:
    """Start, feed and finish matches.

    The in-memory ``MatchState`` decides which question is live; the
    ``Lobby`` row mirrors it at transition points so a restart can still
    recover match metadata. Two answers for the same match may interleave
    their database writes; the last commit wins for the mirrored fields.
    """

    def __init__(self, store: MatchStateStore, scheduler, gateway, questions: QuestionProvider, config):
        self.store = store
        self.scheduler = scheduler
        self.gateway = gateway
        self.questions = questions
        self.min_players = int(config.get('MIN_PLAYERS', 2))
        self.countdown_sec = float(config.get('START_COUNTDOWN_SEC', 3))
        self.max_duration_ms = int(config.get('MAX_MATCH_DURATION_SEC', 3600)) * 1000
        self.stale_after_ms = int(config.get('MATCH_STALE_AFTER_SEC', 1800)) * 1000
        self.sweep_interval_sec = float(config.get('SWEEP_INTERVAL_SEC', 600))
        self.controller = AdvancementController(
            store, scheduler, gateway,
            on_advanced=self._mirror_question_index,
            on_exhausted=self.end,
            grace_sec=float(config.get('ADVANCE_GRACE_SEC', 3)),
            fallback_buffer_sec=float(config.get('FALLBACK_BUFFER_SEC', 5)),
        )

    def now_ms(self) -> int:
        return int(self.scheduler.now() * 1000)

    def _get_lobby(self, code: str) -> Lobby:
        lobby = Lobby.query.filter_by(code=code.upper()).first()
        if not lobby:
            raise LobbyNotFound()
        return lobby

    # ---- start ----

    def start(self, code: str) -> MatchState:
        code = code.upper()
        lobby = self._get_lobby(code)
        if lobby.status != 'waiting' or code in self.store:
            raise LobbyAlreadyStarted()
        if len(lobby.players) < self.min_players:
            raise NotEnoughPlayers(f'Need at least {self.min_players} players')

        questions = self.questions.prefetch(lobby.question_count, lobby.difficulty, lobby.question_time_limit)

        # Claim the key before touching the lobby row; a concurrent start that
        # got here first keeps its snapshot.
        now = self.now_ms()
        try:
            state = self.store.create(code, MatchState(
                match_key=code,
                questions=questions,
                started_at_ms=now,
                current_question_started_at_ms=now,
            ))
        except ConflictError:
            raise LobbyAlreadyStarted()

        try:
            lobby.set_questions(questions)
            lobby.transition_to('playing')
            lobby.started_at = datetime.utcnow()
            lobby.current_question_index = 0
            for player in lobby.players:
                player.score = 0
                player.answers = []
            db.session.commit()
        except Exception:
            db.session.rollback()
            self.store.delete(code)
            raise
        current_app.logger.info(f"[match-start] lobby={code} players={len(lobby.players)} questions={len(questions)}")

        self.gateway.game_start(code, len(questions), lobby.settings)
        self.controller.schedule_first_question(code, self.countdown_sec)
        return state

    # ---- answers ----

    def submit_answer(self, code: str, user_id: int, question_id: str, value, response_time_ms) -> ScoreResult:
        code = code.upper()
        state = self.store.get(code)
        if state is None or not state.is_active:
            raise MatchNotActive()
        if not isinstance(value, str):
            raise ValidationError('Answer must be a string')
        question = state.current_question
        question_index = state.question_index
        if question is None or question.id != question_id:
            raise StaleQuestion()

        lobby = self._get_lobby(code)
        player = lobby.find_player(user_id)
        if player is None:
            raise PlayerNotInMatch()
        if Answer.query.filter_by(player_id=player.id, question_id=question_id).first():
            raise AlreadyAnswered()

        result = score_answer(question, value, response_time_ms)
        db.session.add(Answer(
            player=player,
            question_id=question_id,
            submitted_value=value,
            is_correct=result.is_correct,
            response_time_ms=result.response_time_ms,
        ))
        player.score = (player.score or 0) + result.points
        db.session.commit()
        current_app.logger.debug(
            f"[answer] lobby={code} user={user_id} question={question_id} correct={result.is_correct} points={result.points}"
        )

        self.gateway.score_update(code, lobby.players)
        self._evaluate_fast_path(lobby, question_id, question_index)
        return result

    def _evaluate_fast_path(self, lobby: Lobby, question_id: str, question_index: int) -> bool:
        active = [p for p in lobby.players if p.is_connected]
        answered = (
            db.session.query(Answer.player_id)
            .join(LobbyPlayer, Answer.player_id == LobbyPlayer.id)
            .filter(LobbyPlayer.lobby_id == lobby.id, Answer.question_id == question_id)
            .distinct()
            .count()
        )
        current_app.logger.info(
            f"[answers] lobby={lobby.code} question={question_id} answered={answered}/{len(active)}"
        )
        return self.controller.evaluate(lobby.code, question_index, answered, len(active))

    # ---- connections ----

    def connect_player(self, code: str, user_id: int, sid: str) -> LobbyPlayer:
        lobby = self._get_lobby(code)
        player = lobby.find_player(user_id)
        if player is None:
            raise PlayerNotInMatch('You are not a player in this lobby')
        player.sid = sid
        db.session.commit()
        return player

    def handle_disconnect(self, sid: str) -> List[str]:
        """Clear the connection reference for ``sid``; the player stays in the match."""
        codes = []
        for player in LobbyPlayer.query.filter_by(sid=sid).all():
            player.sid = None
            db.session.commit()
            lobby = player.lobby
            codes.append(lobby.code)
            self.gateway.player_disconnected(lobby.code, player)
            state = self.store.get(lobby.code)
            question = state.current_question if state is not None else None
            if state is not None and state.is_active and question is not None:
                self._evaluate_fast_path(lobby, question.id, state.question_index)
        return codes

    # ---- transitions ----

    def _mirror_question_index(self, code: str, index: int) -> None:
        try:
            lobby = Lobby.query.filter_by(code=code).first()
            if lobby:
                lobby.current_question_index = index
                db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[mirror-fail] lobby={code} index={index}")

    def end(self, code: str) -> Optional[Match]:
        """Finish the match for ``code``. Calling it again is a no-op."""
        code = code.upper()
        state = self.store.get(code)
        if state is None:
            return None
        with state.lock:
            if not state.is_active:
                return None
            state.is_active = False
            self.controller.cancel(state)

        match = None
        lobby = None
        winner = None
        try:
            lobby = Lobby.query.filter_by(code=code).first()
            if lobby:
                lobby.transition_to('finished')
                lobby.ended_at = datetime.utcnow()
                winner = pick_winner(lobby.players)
                match = Match(
                    lobby_code=code,
                    players=json.dumps([{
                        'player_id': p.user_id,
                        'name': p.name,
                        'final_score': p.score or 0,
                        'answers': [a.to_dict() for a in p.answers],
                    } for p in lobby.players]),
                    winner_id=winner.user_id if winner else None,
                    started_at=lobby.started_at or lobby.ended_at,
                    ended_at=lobby.ended_at,
                    total_questions=state.total_questions,
                )
                db.session.add(match)
                for p in lobby.players:
                    user = db.session.get(User, p.user_id)
                    if user is None:
                        continue
                    user.total_games = (user.total_games or 0) + 1
                    if winner is not None and p.user_id == winner.user_id:
                        user.total_wins = (user.total_wins or 0) + 1
                db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[match-end-fail] lobby={code}")
            match = None
        finally:
            self.store.delete(code)

        if lobby is not None:
            self.gateway.game_end(code, lobby.players, winner)
        current_app.logger.info(
            f"[match-end] lobby={code} winner={winner.name if winner else None} score={winner.score if winner else None}"
        )
        return match

    # ---- cleanup ----

    def sweep(self, now_ms: Optional[int] = None) -> List[str]:
        """Force-end matches that ran too long or went idle."""
        now = now_ms if now_ms is not None else self.now_ms()
        ended = []
        for code in self.store.list_active_keys():
            state = self.store.get(code)
            if state is None:
                continue
            too_long = now - state.started_at_ms > self.max_duration_ms
            idle = now - state.current_question_started_at_ms > self.stale_after_ms
            if too_long or idle:
                current_app.logger.info(f"[sweep] lobby={code} too_long={too_long} idle={idle}")
                self.end(code)
                ended.append(code)
        return ended

    def start_sweeper(self):
        return self.scheduler.schedule(self.sweep_interval_sec, self._sweep_tick)

    def _sweep_tick(self) -> None:
        try:
            self.sweep()
        finally:
            self.start_sweeper()


def pick_winner(players):
    """Highest score wins; the first player in lobby order takes a tie."""
    winner = None
    for p in players:
        if winner is None or (p.score or 0) > (winner.score or 0):
            winner = p
    return winner
