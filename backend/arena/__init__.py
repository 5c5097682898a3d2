from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Socket.IO shares the CORS origins of the HTTP API
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from arena.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/api/auth')

    from arena.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api/matches')

    from arena.api.matchmaking import matchmaking
    flask_app.register_blueprint(matchmaking, url_prefix='/api/matchmaking')

    from arena.errors import ArenaError

    @flask_app.errorhandler(ArenaError)
    def handle_arena_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from arena.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Unauthorized', 'code': 'unauthorized', 'retryable': False}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drop and recreate all tables, then seed three demo fighters."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            for username in ['warrior1', 'warrior2', 'warrior3']:
                user = User(username=username, rating=flask_app.config['DEFAULT_RATING'])
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Arena database reset; seeded warrior1-3 (password: password)')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
