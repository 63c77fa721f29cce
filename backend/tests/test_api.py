def register(client, name, pin='1234'):
    return client.post('/register', json={'name': name, 'pin': pin})


def create_lobby(client, **overrides):
    body = {'name': 'Friday Trivia', 'max_players': 4, 'settings': {'question_count': 5, 'question_time_limit': 10}}
    body.update(overrides)
    return client.post('/api/lobbies', json=body)


def test_register_and_login(client):
    res = register(client, 'Alice')
    assert res.status_code == 201
    assert res.get_json()['user']['name'] == 'Alice'

    assert client.get('/check_login').status_code == 200
    client.post('/logout')
    assert client.get('/check_login').status_code == 401

    res = client.post('/login', json={'name': 'Alice', 'pin': '9999'})
    assert res.status_code == 401
    res = client.post('/login', json={'name': 'Alice', 'pin': '1234'})
    assert res.get_json()['success'] is True


def test_register_rejects_bad_pin_and_duplicate_name(client):
    assert register(client, 'Alice', pin='12a4').status_code == 400
    assert register(client, 'Alice').status_code == 201
    assert register(client, 'Alice').status_code == 400


def test_create_lobby_requires_login(client):
    res = create_lobby(client)
    assert res.status_code == 401


def test_create_and_list_lobby(client):
    register(client, 'Alice')
    res = create_lobby(client)
    assert res.status_code == 201
    lobby = res.get_json()
    assert len(lobby['code']) == 6
    assert lobby['status'] == 'waiting'
    assert lobby['settings']['question_count'] == 5
    assert [p['name'] for p in lobby['players']] == ['Alice']
    assert 'questions' not in lobby

    listed = client.get('/api/lobbies').get_json()['lobbies']
    assert [item['code'] for item in listed] == [lobby['code']]
    assert listed[0]['owner_name'] == 'Alice'


def test_create_lobby_validates_settings(client):
    register(client, 'Alice')
    res = create_lobby(client, settings={'question_count': 3})
    assert res.status_code == 400
    assert res.get_json()['reason'] == 'validation_error'
    res = create_lobby(client, settings={'difficulty': 'impossible'})
    assert res.status_code == 400
    res = create_lobby(client, name='')
    assert res.status_code == 400


def test_unknown_lobby_is_404(client):
    res = client.get('/api/lobbies/ZZZZZZ')
    assert res.status_code == 404
    assert res.get_json()['reason'] == 'lobby_not_found'


def test_join_and_start_lobby(flask_app, client, runtime, scheduler, gateway):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']

    bob = flask_app.test_client()
    register(bob, 'Bob')
    res = bob.post(f'/api/lobbies/{code.lower()}/join')
    assert res.status_code == 201
    assert [p['name'] for p in res.get_json()['players']] == ['Alice', 'Bob']
    assert gateway.named('lobby_update')

    # only the owner may start
    assert bob.post(f'/api/lobbies/{code}/start').status_code == 403

    res = client.post(f'/api/lobbies/{code}/start')
    assert res.status_code == 200
    started = res.get_json()
    assert started['status'] == 'playing'
    assert started['total_questions'] == 5
    assert code in runtime.store
    assert gateway.named('game_start')[0]['total_questions'] == 5

    res = client.post(f'/api/lobbies/{code}/start')
    assert res.status_code == 409
    assert res.get_json()['reason'] == 'lobby_already_started'

    carol = flask_app.test_client()
    register(carol, 'Carol')
    res = carol.post(f'/api/lobbies/{code}/join')
    assert res.status_code == 409


def test_start_needs_two_players(client, runtime):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    res = client.post(f'/api/lobbies/{code}/start')
    assert res.status_code == 409
    assert res.get_json()['reason'] == 'not_enough_players'
    assert client.get(f'/api/lobbies/{code}').get_json()['status'] == 'waiting'


def test_full_lobby_rejects_join(flask_app, client, runtime):
    register(client, 'Alice')
    code = create_lobby(client, max_players=2).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    assert bob.post(f'/api/lobbies/{code}/join').status_code == 201

    carol = flask_app.test_client()
    register(carol, 'Carol')
    res = carol.post(f'/api/lobbies/{code}/join')
    assert res.status_code == 409
    assert res.get_json()['reason'] == 'lobby_full'


def test_owner_leaving_hands_lobby_over(flask_app, client, runtime):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    bob.post(f'/api/lobbies/{code}/join')

    assert client.post(f'/api/lobbies/{code}/leave').status_code == 200
    lobby = client.get(f'/api/lobbies/{code}').get_json()
    assert [p['name'] for p in lobby['players']] == ['Bob']
    assert lobby['owner_id'] == lobby['players'][0]['id']

    bob.post(f'/api/lobbies/{code}/leave')
    assert client.get(f'/api/lobbies/{code}').status_code == 404


def test_recent_matches_lists_finished_games(flask_app, client, runtime):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    bob.post(f'/api/lobbies/{code}/join')
    client.post(f'/api/lobbies/{code}/start')
    with flask_app.app_context():
        runtime.lifecycle.end(code)

    recent = client.get('/api/matches/recent').get_json()['matches']
    assert len(recent) == 1
    assert recent[0]['lobby_code'] == code
    assert client.get(f'/api/lobbies/{code}').get_json()['status'] == 'finished'


def test_owner_updates_waiting_lobby_settings(flask_app, client, runtime, gateway):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']

    res = client.put(f'/api/lobbies/{code.lower()}', json={
        'name': 'Saturday <b>Trivia</b>', 'is_public': False,
        'settings': {'question_count': 20, 'difficulty': 'hard'},
    })
    assert res.status_code == 200
    lobby = res.get_json()
    assert lobby['name'] == 'Saturday bTrivia/b'
    assert lobby['is_public'] is False
    # untouched settings keep their values
    assert lobby['settings'] == {
        'max_players': 4, 'question_count': 20, 'question_time_limit': 10, 'difficulty': 'hard',
    }
    assert gateway.named('lobby_update')[-1]['lobby']['settings']['difficulty'] == 'hard'
    assert client.get('/api/lobbies').get_json()['lobbies'] == []


def test_lobby_settings_update_is_owner_only(flask_app, client, runtime, gateway):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    bob.post(f'/api/lobbies/{code}/join')
    updates = len(gateway.named('lobby_update'))

    res = bob.put(f'/api/lobbies/{code}', json={'settings': {'question_count': 50}})
    assert res.status_code == 403
    assert res.get_json()['reason'] == 'not_lobby_owner'
    assert client.get(f'/api/lobbies/{code}').get_json()['settings']['question_count'] == 5
    assert len(gateway.named('lobby_update')) == updates


def test_lobby_settings_update_validates_values(flask_app, client, runtime):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    bob.post(f'/api/lobbies/{code}/join')

    for body in (
        {'settings': {'question_count': 51}},
        {'settings': {'question_time_limit': 5}},
        {'settings': {'difficulty': 'impossible'}},
        {'max_players': 17},
        {'max_players': 1},
        {'name': '<>'},
    ):
        res = client.put(f'/api/lobbies/{code}', json=body)
        assert res.status_code == 400, body
        assert res.get_json()['reason'] == 'validation_error'

    carol = flask_app.test_client()
    register(carol, 'Carol')
    carol.post(f'/api/lobbies/{code}/join')
    # cannot shrink below the players already in the lobby
    assert client.put(f'/api/lobbies/{code}', json={'max_players': 2}).status_code == 400
    assert client.put(f'/api/lobbies/{code}', json={'max_players': 3}).status_code == 200
    assert client.get(f'/api/lobbies/{code}').get_json()['settings']['max_players'] == 3


def test_lobby_settings_locked_once_started(flask_app, client, runtime):
    register(client, 'Alice')
    code = create_lobby(client).get_json()['code']
    bob = flask_app.test_client()
    register(bob, 'Bob')
    bob.post(f'/api/lobbies/{code}/join')
    client.post(f'/api/lobbies/{code}/start')

    res = client.put(f'/api/lobbies/{code}', json={'settings': {'question_count': 20}})
    assert res.status_code == 409
    assert res.get_json()['reason'] == 'lobby_already_started'
    assert client.put('/api/lobbies/NOPE00', json={}).status_code == 404


def test_lobby_settings_update_requires_login(client):
    assert client.put('/api/lobbies/ABC123', json={'name': 'x'}).status_code == 401


def test_test_config_carries_no_form_csrf_flag(flask_app):
    assert 'WTF_CSRF_ENABLED' not in flask_app.config
