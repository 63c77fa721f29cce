import os
import sys
import pytest

# Ensure the backend root (containing the `monkeymind` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from monkeymind import create_app, db, socketio
from monkeymind.services.match.gateway import SocketGateway
from monkeymind.services.match.questions import TEXT, Question, QuestionProvider
from monkeymind.services.match.runtime import MatchRuntime
from monkeymind.services.match.scheduler import TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    MIN_PLAYERS = 2
    QUESTION_TIME_LIMIT = 30
    START_COUNTDOWN_SEC = 3
    ADVANCE_GRACE_SEC = 3
    FALLBACK_BUFFER_SEC = 5
    MAX_MATCH_DURATION_SEC = 3600
    MATCH_STALE_AFTER_SEC = 1800
    SWEEP_INTERVAL_SEC = 600
    USE_REMOTE_QUESTIONS = False
    QUESTION_CACHE_TTL_SEC = 3600
    BCRYPT_LOG_ROUNDS = 4


class ManualScheduler:
    """Scheduler driven by an explicit clock; ``advance`` fires due timers in order."""

    def __init__(self, start=1000.0):
        self.clock = start
        self.handles = []

    def now(self):
        return self.clock

    def schedule(self, delay, callback, *args):
        handle = TimerHandle(delay, callback, args, due_at=self.clock + delay)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds):
        target = self.clock + seconds
        while True:
            due = [h for h in self.pending() if h.due_at <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due_at)
            self.clock = max(self.clock, handle.due_at)
            handle.fired = True
            handle.callback(*handle.args)
        self.clock = target


class RecordingGateway(SocketGateway):
    def __init__(self):
        super().__init__(socketio=None)
        self.events = []

    def _emit(self, event, payload, to):
        self.events.append((event, payload, to))

    def named(self, event):
        return [payload for name, payload, _to in self.events if name == event]


class FixedQuestionSource:
    """Text questions whose correct answer is always 'A'."""

    def __init__(self):
        self.calls = 0

    def fetch_questions(self, count, difficulty=None):
        self.calls += 1
        return [
            Question(id=f'fixed-{i}', kind=TEXT, prompt=f'Question {i}?', choices=('A', 'B', 'C', 'D'),
                     correct_answer='A', category='Test', difficulty=difficulty)
            for i in range(count)
        ]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import monkeymind.models  # noqa: F401
        db.create_all()
    # No context stays pushed here: requests must each get a fresh `g`,
    # otherwise Flask-Login's cached user leaks between test clients.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """Application context for tests that drive the match core directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def question_source():
    return FixedQuestionSource()


@pytest.fixture()
def runtime(flask_app, scheduler, gateway, question_source):
    return MatchRuntime(flask_app, scheduler=scheduler, gateway=gateway,
                        questions=QuestionProvider(source=question_source))


@pytest.fixture()
def make_lobby(app_ctx):
    """Create a waiting lobby with registered, connected players."""
    from monkeymind.models import Lobby, LobbyPlayer, User

    def _make(names=('Alice', 'Bob'), question_count=1, time_limit=10, connected=True, difficulty='medium'):
        users = []
        for name in names:
            user = User(name=name)
            user.set_pin('1234')
            db.session.add(user)
            users.append(user)
        db.session.flush()
        lobby = Lobby(name='Test Lobby', owner_id=users[0].id, question_count=question_count,
                      question_time_limit=time_limit, difficulty=difficulty)
        for user in users:
            lobby.players.append(LobbyPlayer(
                user_id=user.id, name=user.name, avatar_url=user.avatar_url,
                sid=f'sid-{user.name}' if connected else None,
            ))
        db.session.add(lobby)
        db.session.commit()
        return lobby, users

    return _make


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
