import json

from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from monkeymind.models import Match


matches = Blueprint('matches', __name__)


@matches.route('/recent', methods=['GET'])
@login_required
def recent_matches():
    """Most recent finished matches the current user played in."""
    try:
        limit = min(max(int(request.args.get('limit', 10)), 1), 50)
    except ValueError:
        limit = 10
    mine = []
    # players is a JSON column, so filter in Python over a bounded window
    for match in Match.query.order_by(Match.ended_at.desc()).limit(500).all():
        player_ids = {p.get('player_id') for p in json.loads(match.players or '[]')}
        if current_user.id in player_ids:
            mine.append(match.to_dict())
            if len(mine) >= limit:
                break
    return jsonify({'matches': mine})
