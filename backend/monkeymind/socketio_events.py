from functools import wraps

from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from flask_login import current_user
from monkeymind import socketio, db
from monkeymind.api.lobbies import update_lobby_settings
from monkeymind.models import Lobby, LobbyPlayer
from monkeymind.services.match.errors import MatchError, ValidationError
from monkeymind.services.match.gateway import lobby_room
from monkeymind.services.match.runtime import get_runtime


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _code_from(data) -> str:
    code = (data or {}).get('code')
    if not code or not isinstance(code, str):
        raise ValidationError('code is required')
    return code.upper()


def socket_action(handler):
    """Require a logged-in session and turn failures into ``error`` events."""
    @wraps(handler)
    def wrapper(data=None):
        if not current_user.is_authenticated:
            emit('error', {'message': 'Not authenticated'})
            return
        try:
            return handler(data)
        except MatchError as exc:
            db.session.rollback()
            emit('error', {'message': exc.message, 'reason': exc.reason})
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[socket-error] handler={handler.__name__}")
            emit('error', {'message': 'Something went wrong'})
    return wrapper


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*_args):
    codes = get_runtime().lifecycle.handle_disconnect(_get_sid())
    if codes:
        current_app.logger.info(f"[disconnect] sid={_get_sid()} lobbies={codes}")


@socket_action
def handle_join_lobby(data):
    code = _code_from(data)
    player = get_runtime().lifecycle.connect_player(code, current_user.id, _get_sid())
    join_room(lobby_room(code))
    lobby = player.lobby.to_dict()
    emit('joined_lobby', {'lobby': lobby})
    get_runtime().gateway.lobby_update(code, lobby)


@socket_action
def handle_leave_lobby(data):
    code = _code_from(data)
    leave_room(lobby_room(code))
    player = LobbyPlayer.query.join(Lobby).filter(Lobby.code == code, LobbyPlayer.sid == _get_sid()).first()
    if player:
        lobby = player.lobby
        get_runtime().lifecycle.handle_disconnect(_get_sid())
        get_runtime().gateway.lobby_update(code, lobby.to_dict())
    emit('left_lobby', {'room': lobby_room(code)})


@socket_action
def handle_update_lobby_settings(data):
    code = _code_from(data)
    update_lobby_settings(code, current_user.id, data)


@socket_action
def handle_start_game(data):
    code = _code_from(data)
    lobby = Lobby.query.filter_by(code=code).first()
    if lobby and lobby.owner_id != current_user.id:
        emit('error', {'message': 'Only owner can start game'})
        return
    get_runtime().lifecycle.start(code)


@socket_action
def handle_submit_answer(data):
    data = data or {}
    player = (
        LobbyPlayer.query.join(Lobby)
        .filter(LobbyPlayer.sid == _get_sid(), Lobby.status == 'playing')
        .first()
    )
    if not player:
        emit('error', {'message': 'Game not found'})
        return
    runtime = get_runtime()
    result = runtime.lifecycle.submit_answer(
        player.lobby.code,
        current_user.id,
        data.get('question_id'),
        data.get('value'),
        data.get('response_time_ms', 0),
    )
    runtime.gateway.answer_result(_get_sid(), result)


@socket_action
def handle_skip_question(data):
    code = _code_from(data)
    lobby = Lobby.query.filter_by(code=code).first()
    if not lobby or lobby.owner_id != current_user.id:
        return
    get_runtime().controller.skip_question(code)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_lobby': handle_join_lobby,
        'leave_lobby': handle_leave_lobby,
        'update_lobby_settings': handle_update_lobby_settings,
        'start_game': handle_start_game,
        'submit_answer': handle_submit_answer,
        'skip_question': handle_skip_question,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
