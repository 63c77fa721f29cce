from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from monkeymind import db
from monkeymind.models import Lobby, LobbyPlayer
from monkeymind.services.match.errors import (
    LobbyFull, LobbyAlreadyStarted, LobbyNotFound, NotLobbyOwner, ValidationError,
)
from monkeymind.services.match.questions import DIFFICULTIES
from monkeymind.services.match.runtime import get_runtime


lobbies = Blueprint('lobbies', __name__)


def _int_in_range(data, key, default, lo, hi, label):
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or not lo <= value <= hi:
        raise ValidationError(f'{label} must be between {lo} and {hi}')
    return value


def _get_lobby_or_404(code):
    lobby = Lobby.query.filter_by(code=code.upper()).first()
    if not lobby:
        raise LobbyNotFound()
    return lobby


def _broadcast_lobby(lobby):
    get_runtime().gateway.lobby_update(lobby.code, lobby.to_dict())


@lobbies.route('', methods=['GET'])
def list_public_lobbies():
    waiting = (
        Lobby.query.filter_by(is_public=True, status='waiting')
        .order_by(Lobby.created_at.desc())
        .limit(50)
        .all()
    )
    return jsonify({'lobbies': [lobby.to_list_item() for lobby in waiting]})


def read_lobby_settings(data, partial=False):
    """Validate a lobby body shaped like ``{name, max_players, is_public, settings: {...}}``.

    Returns column values for ``Lobby``. With ``partial`` only the keys
    present in ``data`` are returned and nothing is defaulted.
    """
    if not isinstance(data, dict):
        raise ValidationError('Lobby settings must be an object')
    settings = data.get('settings') or {}
    if not isinstance(settings, dict):
        raise ValidationError('Lobby settings must be an object')
    values = {}
    if not partial or 'name' in data:
        name = str(data.get('name') or '').replace('<', '').replace('>', '').strip()[:50]
        if not name:
            raise ValidationError('Lobby name is required')
        values['name'] = name
    if not partial or 'max_players' in data:
        values['max_players'] = _int_in_range(data, 'max_players', 8, 2, 16, 'Max players')
    if not partial or 'is_public' in data:
        values['is_public'] = bool(data.get('is_public', True))
    if not partial or 'question_count' in settings:
        values['question_count'] = _int_in_range(settings, 'question_count', 10, 5, 50, 'Question count')
    if not partial or 'question_time_limit' in settings:
        values['question_time_limit'] = _int_in_range(
            settings, 'question_time_limit', int(current_app.config.get('QUESTION_TIME_LIMIT', 30)), 10, 120,
            'Question time limit'
        )
    if not partial or 'difficulty' in settings:
        difficulty = settings.get('difficulty', 'medium')
        if difficulty not in DIFFICULTIES:
            raise ValidationError(f"Difficulty must be one of {', '.join(DIFFICULTIES)}")
        values['difficulty'] = difficulty
    return values


def update_lobby_settings(code, user_id, data):
    """Apply an owner's edits to a waiting lobby and broadcast the result."""
    lobby = _get_lobby_or_404(code)
    if lobby.owner_id != user_id:
        raise NotLobbyOwner()
    if lobby.status != 'waiting':
        raise LobbyAlreadyStarted()
    values = read_lobby_settings(data, partial=True)
    if values.get('max_players', lobby.max_players) < len(lobby.players):
        raise ValidationError(f'Max players cannot be below the {len(lobby.players)} players already joined')
    for key, value in values.items():
        setattr(lobby, key, value)
    db.session.commit()
    current_app.logger.info(f"[lobby-settings] lobby={lobby.code} changed={sorted(values)}")
    _broadcast_lobby(lobby)
    return lobby


@lobbies.route('', methods=['POST'])
@login_required
def create_lobby():
    data = request.get_json(silent=True) or {}
    lobby = Lobby(owner_id=current_user.id, **read_lobby_settings(data))
    lobby.players.append(LobbyPlayer(user_id=current_user.id, name=current_user.name, avatar_url=current_user.avatar_url))
    db.session.add(lobby)
    db.session.commit()
    current_app.logger.info(f"[lobby-create] lobby={lobby.code} owner={current_user.name}")
    return jsonify(lobby.to_dict()), 201


@lobbies.route('/<string:code>', methods=['GET'])
def get_lobby(code):
    return jsonify(_get_lobby_or_404(code).to_dict())


@lobbies.route('/<string:code>', methods=['PUT'])
@login_required
def update_lobby(code):
    data = request.get_json(silent=True) or {}
    return jsonify(update_lobby_settings(code, current_user.id, data).to_dict())


@lobbies.route('/<string:code>/join', methods=['POST'])
@login_required
def join_lobby(code):
    lobby = _get_lobby_or_404(code)
    if lobby.find_player(current_user.id):
        return jsonify(lobby.to_dict())
    if lobby.status != 'waiting':
        raise LobbyAlreadyStarted()
    if len(lobby.players) >= lobby.max_players:
        raise LobbyFull()

    lobby.players.append(LobbyPlayer(user_id=current_user.id, name=current_user.name, avatar_url=current_user.avatar_url))
    db.session.commit()
    _broadcast_lobby(lobby)
    return jsonify(lobby.to_dict()), 201


@lobbies.route('/<string:code>/leave', methods=['POST'])
@login_required
def leave_lobby(code):
    lobby = _get_lobby_or_404(code)
    player = lobby.find_player(current_user.id)
    if not player:
        return jsonify({'error': 'You are not a player in this lobby'}), 400

    if lobby.status != 'waiting':
        # Mid-match leavers keep their score history
        if player.sid:
            get_runtime().lifecycle.handle_disconnect(player.sid)
        _broadcast_lobby(lobby)
        return jsonify({'message': 'Left game'})

    lobby.players.remove(player)
    if not lobby.players:
        db.session.delete(lobby)
        db.session.commit()
        current_app.logger.info(f"[lobby-delete] lobby={code.upper()} empty")
        return jsonify({'message': 'Lobby closed'})
    if lobby.owner_id == current_user.id:
        lobby.owner_id = lobby.players[0].user_id
    db.session.commit()
    _broadcast_lobby(lobby)
    return jsonify({'message': 'Left lobby'})


@lobbies.route('/<string:code>/start', methods=['POST'])
@login_required
def start_lobby(code):
    lobby = _get_lobby_or_404(code)
    if lobby.owner_id != current_user.id:
        return jsonify({'error': 'Only the owner can start the game'}), 403
    get_runtime().lifecycle.start(lobby.code)
    return jsonify(lobby.to_dict())
