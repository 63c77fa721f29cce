"""Outbound Socket.IO events for lobbies and running matches.

Payload builders are plain functions so they can be checked without a
socket; ``SocketGateway`` only decides where each payload goes.
"""

from typing import Dict, List, Sequence

from .questions import VISUAL, Question
from .scoring import ScoreResult


def lobby_room(code: str) -> str:
    return f"lobby:{code.upper()}"


def question_payload(question: Question, question_number: int, total_questions: int) -> Dict:
    payload = {
        'question_id': question.id,
        'question_number': question_number,
        'total_questions': total_questions,
        'time_limit_seconds': question.time_limit_seconds,
        'kind': question.kind,
        'category': question.category,
        'difficulty': question.difficulty,
    }
    if question.kind == VISUAL:
        payload['image_ref'] = question.image_ref
    else:
        payload['prompt'] = question.prompt
        payload['choices'] = list(question.choices) if question.choices is not None else None
    return payload


def player_summary(player) -> Dict:
    return {
        'id': player.user_id,
        'name': player.name,
        'score': player.score or 0,
        'avatar_url': player.avatar_url,
    }


def ranked_results(players: Sequence) -> List[Dict]:
    # sorted() is stable, so equal scores keep lobby join order
    ordered = sorted(players, key=lambda p: p.score or 0, reverse=True)
    results = []
    for rank, player in enumerate(ordered, start=1):
        row = player_summary(player)
        row['rank'] = rank
        results.append(row)
    return results


class SocketGateway:
    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def _emit(self, event: str, payload: Dict, to: str) -> None:
        self.socketio.emit(event, payload, to=to, namespace=self.namespace)

    def game_start(self, code: str, total_questions: int, settings: Dict) -> None:
        self._emit('game_start', {'total_questions': total_questions, 'settings': settings}, lobby_room(code))

    def new_question(self, code: str, question: Question, question_number: int, total_questions: int) -> None:
        self._emit('new_question', question_payload(question, question_number, total_questions), lobby_room(code))

    def answer_result(self, sid: str, result: ScoreResult) -> None:
        self._emit('answer_result', {
            'is_correct': result.is_correct,
            'correct_answer': result.correct_answer,
            'points_gained': result.points,
            'time_bonus': result.time_bonus,
        }, sid)

    def score_update(self, code: str, players: Sequence) -> None:
        self._emit('score_update', {'players': [player_summary(p) for p in players]}, lobby_room(code))

    def game_end(self, code: str, players: Sequence, winner=None) -> None:
        self._emit('game_end', {
            'results': ranked_results(players),
            'winner': player_summary(winner) if winner is not None else None,
        }, lobby_room(code))

    def lobby_update(self, code: str, lobby: Dict) -> None:
        self._emit('lobby_update', {'lobby': lobby}, lobby_room(code))

    def player_disconnected(self, code: str, player) -> None:
        self._emit('player_disconnected', {'id': player.user_id, 'name': player.name}, lobby_room(code))
