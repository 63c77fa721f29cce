from flask import current_app

from .gateway import SocketGateway
from .lifecycle import MatchLifecycle
from .questions import BananaQuestionSource, QuestionProvider
from .scheduler import BackgroundScheduler
from .store import MatchStateStore


EXTENSION_KEY = 'match_runtime'


class MatchRuntime:
    """Everything one process needs to run matches, owned by the Flask app."""

    def __init__(self, app, scheduler, gateway, questions):
        self.app = app
        self.store = MatchStateStore()
        self.scheduler = scheduler
        self.gateway = gateway
        self.questions = questions
        self.lifecycle = MatchLifecycle(self.store, scheduler, gateway, questions, app.config)
        app.extensions[EXTENSION_KEY] = self

    @property
    def controller(self):
        return self.lifecycle.controller


def build_question_provider(config) -> QuestionProvider:
    source = None
    if config.get('USE_REMOTE_QUESTIONS'):
        source = BananaQuestionSource(
            config['QUESTION_SOURCE_URL'],
            timeout_sec=float(config.get('QUESTION_SOURCE_TIMEOUT_SEC', 5)),
            retries=int(config.get('QUESTION_SOURCE_RETRIES', 2)),
        )
    return QuestionProvider(source=source, cache_ttl_sec=int(config.get('QUESTION_CACHE_TTL_SEC', 3600)))


def init_match_runtime(app, socketio) -> MatchRuntime:
    runtime = MatchRuntime(
        app,
        scheduler=BackgroundScheduler(app, socketio),
        gateway=SocketGateway(socketio, namespace='/ws'),
        questions=build_question_provider(app.config),
    )
    # Abandoned-match cleanup runs outside of tests only
    if not app.config.get('TESTING'):
        runtime.lifecycle.start_sweeper()
    return runtime


def get_runtime() -> MatchRuntime:
    return current_app.extensions[EXTENSION_KEY]
