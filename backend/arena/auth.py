import secrets

from flask import Blueprint, current_app, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from arena import db
from arena.models import User

auth = Blueprint('auth', __name__)


@auth.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({'error': 'Missing username or password'}), 400
    if len(username) > 64:
        return jsonify({'error': 'Username is too long'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=username, rating=current_app.config.get('DEFAULT_RATING', 1200))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201


@auth.route('/guest', methods=['POST'])
def guest():
    """Throwaway account for private matches; guests cannot play ranked."""
    while True:
        username = f"Guest{secrets.token_hex(3)}"
        if not User.query.filter_by(username=username).first():
            break
    user = User(username=username, is_guest=True, rating=current_app.config.get('DEFAULT_RATING', 1200))
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    return jsonify({'message': 'Guest session started', 'user': user.to_dict()}), 201


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password'}), 401


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())
