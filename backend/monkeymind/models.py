from monkeymind import db, bcrypt
from flask_login import UserMixin
from datetime import datetime
import json
import string
import random

from monkeymind.services.match.errors import ConflictError
from monkeymind.services.match.questions import Question


def generate_avatar_url():
    seed = int(datetime.utcnow().timestamp() * 1000) + random.randint(0, 999999)
    return f"https://www.placemonkeys.com/300?random={seed}"


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False, index=True)
    pin_hash = db.Column(db.String(128), nullable=False)
    avatar_url = db.Column(db.String(256), default=generate_avatar_url)
    total_games = db.Column(db.Integer, default=0, nullable=False)
    total_wins = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_pin(self, pin):
        self.pin_hash = bcrypt.generate_password_hash(pin).decode('utf-8')

    def check_pin(self, pin):
        return bcrypt.check_password_hash(self.pin_hash, pin)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'avatar_url': self.avatar_url,
            'total_games': self.total_games or 0,
            'total_wins': self.total_wins or 0,
        }


def generate_lobby_code(length=6):
    """Generate a unique, short lobby code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Lobby.query.filter_by(code=code).first():
            return code


# Lobby status only moves forward
LOBBY_TRANSITIONS = {
    'waiting': {'playing'},
    'playing': {'finished'},
    'finished': set(),
}


class Lobby(db.Model):
    __tablename__ = 'lobby'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(6), unique=True, index=True, nullable=False)
    name = db.Column(db.String(50), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    is_public = db.Column(db.Boolean, default=True, nullable=False)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, playing, finished
    # Settings
    max_players = db.Column(db.Integer, default=8, nullable=False)
    question_count = db.Column(db.Integer, default=10, nullable=False)
    question_time_limit = db.Column(db.Integer, default=30, nullable=False)
    difficulty = db.Column(db.String(16), default='medium')
    # Durability mirror of the running match
    current_question_index = db.Column(db.Integer, default=0, nullable=False)
    questions = db.Column(db.Text, nullable=True)  # JSON-encoded question snapshot
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    ended_at = db.Column(db.DateTime, nullable=True)

    owner = db.relationship('User')
    players = db.relationship('LobbyPlayer', back_populates='lobby', order_by='LobbyPlayer.id',
                              cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        super(Lobby, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_lobby_code()

    @property
    def settings(self):
        return {
            'max_players': self.max_players,
            'question_count': self.question_count,
            'question_time_limit': self.question_time_limit,
            'difficulty': self.difficulty,
        }

    @property
    def question_list(self):
        try:
            return [Question.from_dict(q) for q in json.loads(self.questions or '[]')]
        except (TypeError, ValueError):
            return []

    def set_questions(self, questions):
        self.questions = json.dumps([q.to_dict() for q in questions])

    def transition_to(self, status):
        if status not in LOBBY_TRANSITIONS.get(self.status, set()):
            raise ConflictError(f'Lobby cannot move from {self.status} to {status}')
        self.status = status

    def find_player(self, user_id):
        for p in self.players:
            if p.user_id == user_id:
                return p
        return None

    def to_dict(self):
        # Question snapshot stays server-side; it carries the answers
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'owner_id': self.owner_id,
            'is_public': self.is_public,
            'status': self.status,
            'settings': self.settings,
            'players': [p.to_dict() for p in self.players],
            'current_question_index': self.current_question_index,
            'total_questions': len(json.loads(self.questions)) if self.questions else 0,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
        }

    def to_list_item(self):
        return {
            'code': self.code,
            'name': self.name,
            'owner_name': self.owner.name if self.owner else 'Unknown',
            'player_count': len(self.players),
            'max_players': self.max_players,
            'status': self.status,
        }


class LobbyPlayer(db.Model):
    __tablename__ = 'lobby_player'
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobby.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(50), nullable=False)
    avatar_url = db.Column(db.String(256), nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    # Socket.IO sid while connected; cleared (not deleted) on disconnect
    sid = db.Column(db.String(64), nullable=True, index=True)
    lobby = db.relationship('Lobby', back_populates='players')
    answers = db.relationship('Answer', back_populates='player', order_by='Answer.id',
                              cascade='all, delete-orphan')

    __table_args__ = (db.UniqueConstraint('lobby_id', 'user_id', name='uq_lobby_player_user'),)

    @property
    def is_connected(self):
        return bool(self.sid)

    def to_dict(self):
        return {
            'id': self.user_id,
            'name': self.name,
            'avatar_url': self.avatar_url,
            'score': self.score or 0,
            'is_connected': self.is_connected,
        }


class Answer(db.Model):
    __tablename__ = 'answer'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('lobby_player.id'), nullable=False)
    question_id = db.Column(db.String(64), nullable=False, index=True)
    submitted_value = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    response_time_ms = db.Column(db.Integer, nullable=False)
    player = db.relationship('LobbyPlayer', back_populates='answers')

    __table_args__ = (db.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),)

    def to_dict(self):
        return {
            'question_id': self.question_id,
            'submitted_value': self.submitted_value,
            'is_correct': self.is_correct,
            'response_time_ms': self.response_time_ms,
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    lobby_code = db.Column(db.String(6), nullable=False, index=True)
    players = db.Column(db.Text, nullable=False)  # JSON-encoded [{player_id, name, final_score, answers}]
    winner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    started_at = db.Column(db.DateTime, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=False)
    total_questions = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'lobby_code': self.lobby_code,
            'players': json.loads(self.players) if self.players else [],
            'winner_id': self.winner_id,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
            'total_questions': self.total_questions,
        }
