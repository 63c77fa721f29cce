from monkeymind import socketio
from monkeymind.models import Lobby


def _names(received):
    return [pkt['name'] for pkt in received]


def _login_socket(flask_app, name):
    http = flask_app.test_client()
    http.post('/register', json={'name': name, 'pin': '1234'})
    return http, socketio.test_client(flask_app, flask_test_client=http, namespace='/ws')


def _connected(flask_app, code):
    with flask_app.app_context():
        lobby = Lobby.query.filter_by(code=code).first()
        return [p.is_connected for p in lobby.players]


def _lobby_with_two_players(flask_app):
    alice_http, alice_sio = _login_socket(flask_app, 'Alice')
    bob_http, bob_sio = _login_socket(flask_app, 'Bob')
    code = alice_http.post('/api/lobbies', json={
        'name': 'Socket Lobby', 'settings': {'question_count': 5, 'question_time_limit': 10},
    }).get_json()['code']
    bob_http.post(f'/api/lobbies/{code}/join')
    return code, (alice_http, alice_sio), (bob_http, bob_sio)


def test_socket_connect_and_ping(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    assert 'connected' in _names(sio_client.get_received('/ws'))

    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[-1]['name'] == 'pong'
    assert received[-1]['args'][0] == {'t': 1}


def test_join_requires_login(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_lobby', {'code': 'ABC123'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[-1]['name'] == 'error'
    assert received[-1]['args'][0]['message'] == 'Not authenticated'


def test_join_lobby_records_connection(flask_app, runtime, gateway):
    code, (_alice_http, alice_sio), _bob = _lobby_with_two_players(flask_app)
    alice_sio.get_received('/ws')

    alice_sio.emit('join_lobby', {'code': code.lower()}, namespace='/ws')
    received = alice_sio.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined_lobby']
    assert joined and joined[0]['args'][0]['lobby']['code'] == code

    assert _connected(flask_app, code) == [True, False]
    assert gateway.named('lobby_update')


def test_join_unknown_lobby_reports_reason(flask_app, runtime):
    _http, alice_sio = _login_socket(flask_app, 'Alice')
    alice_sio.get_received('/ws')
    alice_sio.emit('join_lobby', {'code': 'NOPE00'}, namespace='/ws')
    error = alice_sio.get_received('/ws')[-1]
    assert error['name'] == 'error'
    assert error['args'][0]['reason'] == 'lobby_not_found'


def test_submit_answer_over_socket(flask_app, runtime, scheduler, gateway):
    code, (alice_http, alice_sio), (_bob_http, bob_sio) = _lobby_with_two_players(flask_app)
    alice_sio.emit('join_lobby', {'code': code}, namespace='/ws')
    bob_sio.emit('join_lobby', {'code': code}, namespace='/ws')
    assert alice_http.post(f'/api/lobbies/{code}/start').status_code == 200
    with flask_app.app_context():
        scheduler.advance(3)
    alice_sio.get_received('/ws')

    qid = gateway.named('new_question')[0]['question_id']
    alice_sio.emit('submit_answer', {'question_id': qid, 'value': 'A', 'response_time_ms': 1000}, namespace='/ws')

    results = gateway.named('answer_result')
    assert len(results) == 1
    assert results[0]['is_correct'] is True
    assert results[0]['points_gained'] == 145

    alice_sio.emit('submit_answer', {'question_id': qid, 'value': 'A', 'response_time_ms': 1000}, namespace='/ws')
    error = alice_sio.get_received('/ws')[-1]
    assert error['name'] == 'error'
    assert error['args'][0]['reason'] == 'already_answered'


def test_only_owner_can_start_over_socket(flask_app, runtime):
    code, _alice, (_bob_http, bob_sio) = _lobby_with_two_players(flask_app)
    bob_sio.get_received('/ws')
    bob_sio.emit('start_game', {'code': code}, namespace='/ws')
    error = bob_sio.get_received('/ws')[-1]
    assert error['name'] == 'error'
    assert code not in runtime.store


def test_disconnect_clears_connection(flask_app, runtime, gateway):
    code, _alice, (_bob_http, bob_sio) = _lobby_with_two_players(flask_app)
    bob_sio.emit('join_lobby', {'code': code}, namespace='/ws')
    bob_sio.disconnect(namespace='/ws')

    assert _connected(flask_app, code) == [False, False]
    assert gateway.named('player_disconnected')[0]['name'] == 'Bob'


def test_owner_updates_settings_over_socket(flask_app, runtime, gateway):
    code, (_alice_http, alice_sio), _bob = _lobby_with_two_players(flask_app)
    alice_sio.get_received('/ws')

    alice_sio.emit('update_lobby_settings', {
        'code': code.lower(), 'max_players': 6, 'settings': {'question_time_limit': 45},
    }, namespace='/ws')

    assert not [pkt for pkt in alice_sio.get_received('/ws') if pkt['name'] == 'error']
    settings = gateway.named('lobby_update')[-1]['lobby']['settings']
    assert settings['max_players'] == 6
    assert settings['question_time_limit'] == 45
    with flask_app.app_context():
        assert Lobby.query.filter_by(code=code).first().question_time_limit == 45


def test_non_owner_cannot_update_settings_over_socket(flask_app, runtime, gateway):
    code, _alice, (_bob_http, bob_sio) = _lobby_with_two_players(flask_app)
    bob_sio.get_received('/ws')
    updates = len(gateway.named('lobby_update'))

    bob_sio.emit('update_lobby_settings', {'code': code, 'settings': {'question_count': 50}}, namespace='/ws')
    error = bob_sio.get_received('/ws')[-1]
    assert error['name'] == 'error'
    assert error['args'][0]['reason'] == 'not_lobby_owner'
    assert len(gateway.named('lobby_update')) == updates
    with flask_app.app_context():
        assert Lobby.query.filter_by(code=code).first().question_count == 5
