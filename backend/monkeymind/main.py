import re

from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from .models import db, User

main = Blueprint('main', __name__)

PIN_RE = re.compile(r'^\d{4}$')


def _read_credentials():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    pin = str(data.get('pin') or '')
    return name, pin


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Monkey Mind game server!'})


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    name, pin = _read_credentials()
    if not name or len(name) > 50:
        return jsonify({"success": False, "message": "Name must be 1-50 characters"}), 400
    if not PIN_RE.match(pin):
        return jsonify({"success": False, "message": "PIN must be exactly 4 digits"}), 400
    if User.query.filter_by(name=name).first():
        return jsonify({"success": False, "message": "Name already taken"}), 400

    new_user = User(name=name)
    new_user.set_pin(pin)
    db.session.add(new_user)
    db.session.commit()
    login_user(new_user)
    return jsonify({"success": True, "user": new_user.to_dict()}), 201


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    name, pin = _read_credentials()
    user = User.query.filter_by(name=name).first()
    if user and user.check_pin(pin):
        login_user(user)
        return jsonify({"success": True, "user": user.to_dict()})
    return jsonify({"success": False, "message": "Invalid name or PIN"}), 401


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({"success": True, "user": current_user.to_dict()})

    return protected_check()


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
