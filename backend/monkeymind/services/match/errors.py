"""Error taxonomy for match operations.

Every error carries a short machine ``reason`` and an HTTP-ish
``status_code`` so the REST and Socket.IO layers can surface it without
knowing the concrete class.
"""


class MatchError(Exception):
    status_code = 500
    reason = 'match_error'
    default_message = 'Match error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, 'reason': self.reason}


class ValidationError(MatchError):
    status_code = 400
    reason = 'validation_error'
    default_message = 'Invalid input'


class NotLobbyOwner(MatchError):
    status_code = 403
    reason = 'not_lobby_owner'
    default_message = 'Only the owner can change this lobby'


class NotFoundError(MatchError):
    status_code = 404
    reason = 'not_found'
    default_message = 'Not found'


class LobbyNotFound(NotFoundError):
    reason = 'lobby_not_found'
    default_message = 'Lobby not found'


class MatchNotActive(NotFoundError):
    reason = 'match_not_active'
    default_message = 'Game not active'


class PlayerNotInMatch(NotFoundError):
    reason = 'player_not_in_match'
    default_message = 'You are not a player in this game'


class ConflictError(MatchError):
    status_code = 409
    reason = 'conflict'
    default_message = 'Conflict'


class LobbyAlreadyStarted(ConflictError):
    reason = 'lobby_already_started'
    default_message = 'Game already in progress'


class NotEnoughPlayers(ConflictError):
    reason = 'not_enough_players'
    default_message = 'Need at least 2 players'


class LobbyFull(ConflictError):
    reason = 'lobby_full'
    default_message = 'Lobby is full'


class StaleQuestion(ConflictError):
    reason = 'stale_question'
    default_message = 'Invalid question'


class AlreadyAnswered(ConflictError):
    reason = 'already_answered'
    default_message = 'Already answered this question'


class UpstreamUnavailable(MatchError):
    status_code = 503
    reason = 'upstream_unavailable'
    default_message = 'Question source unavailable'


class SourceUnavailable(UpstreamUnavailable):
    reason = 'source_unavailable'


class InternalError(MatchError):
    status_code = 500
    reason = 'internal_error'
    default_message = 'Something went wrong'
