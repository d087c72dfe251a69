from flask import Flask, jsonify
from flask_cors import CORS
import os
import re
from dotenv import load_dotenv
from datetime import timedelta

from extensions import db, migrate, jwt, mail, socketio, scheduler
from services.errors import (AuthError, NotFound, OperationFailed, PermissionDenied,
                             TransitionError, ValidationError)
from services.stats import StatisticsCache
from services.auth import EmailCooldown, is_token_revoked

load_dotenv()


def create_app(test_config=None):
    """
    The Application Factory.
    Creates and configures the app, but does not run it.
    """
    app = Flask(__name__)

    # --- CONFIGURATION ---
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'default_secret_key')
    # Fix Postgres URL for SQLAlchemy
    database_url = os.getenv('DATABASE_URL', 'sqlite:///foodshare.db')
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'fallback-secret-key')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(minutes=25)

    # --- EMAIL CONFIGURATION ---
    app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', 587))
    app.config['MAIL_USE_TLS'] = True
    app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME')
    app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
    app.config['MAIL_DEFAULT_SENDER'] = os.getenv('MAIL_DEFAULT_SENDER', os.getenv('MAIL_USERNAME'))
    app.config['FRONTEND_URL'] = os.getenv('FRONTEND_URL', 'http://localhost:5173')

    # --- FOODSHARE SETTINGS ---
    app.config['STATS_CACHE_TTL'] = int(os.getenv('STATS_CACHE_TTL', 60))
    app.config['STATS_TIMEZONE'] = os.getenv('STATS_TIMEZONE', 'UTC')
    app.config['EMAIL_COOLDOWN_SECONDS'] = int(os.getenv('EMAIL_COOLDOWN_SECONDS', 60))
    app.config['GEOCODER_URL'] = os.getenv('GEOCODER_URL', 'https://nominatim.openstreetmap.org/reverse')
    app.config['GEOCODER_TIMEOUT'] = int(os.getenv('GEOCODER_TIMEOUT', 10))
    app.config['SIDE_EFFECTS_INLINE'] = os.getenv('SIDE_EFFECTS_INLINE', '').lower() in ('1', 'true', 'yes')

    if test_config:
        app.config.update(test_config)

    # --- INITIALIZE EXTENSIONS ---
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)
    import routes.realtime  # noqa: F401  (registers Socket.IO handlers)
    socketio.init_app(app)
    # Note: We init scheduler here, but start it in __main__
    scheduler.init_app(app)

    app.extensions['stats_cache'] = StatisticsCache(ttl=app.config['STATS_CACHE_TTL'])
    app.extensions['email_cooldown'] = EmailCooldown(period=app.config['EMAIL_COOLDOWN_SECONDS'])

    # --- CORS CONFIGURATION ---
    CORS(app, resources={
        r"/api/*": {
            "origins": [
                "http://localhost:5173",
                "http://localhost:3000",
                re.compile(r"^https://.*\.vercel\.app$")
            ],
            "methods": ["GET", "POST", "PATCH", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"],
            "supports_credentials": True
        }
    })

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        return is_token_revoked(jwt_payload['jti'])

    register_error_handlers(app)

    # --- REGISTER BLUEPRINTS ---
    # Import inside the function to avoid circular imports
    from routes.auth import auth_bp
    from routes.donations import donations_bp
    from routes.notifications import notifications_bp
    from routes.user import user_bp
    from routes.statistics import statistics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(donations_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(statistics_bp)

    import scheduler as scheduled_jobs  # noqa: F401  (registers cron jobs)

    return app


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({'error': str(e), 'errors': e.errors}), 400

    @app.errorhandler(AuthError)
    def handle_auth(e):
        return jsonify({'error': str(e), 'code': e.code}), e.status

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(PermissionDenied)
    def handle_forbidden(e):
        return jsonify({'error': str(e)}), 403

    @app.errorhandler(TransitionError)
    def handle_transition(e):
        return jsonify({'error': str(e)}), 409

    @app.errorhandler(OperationFailed)
    def handle_failure(e):
        app.logger.error("%s: %s", e, e.__cause__)
        return jsonify({'error': str(e)}), 500


# --- ENTRY POINT ---
# This only runs if you type 'python app.py'
if __name__ == "__main__":
    app = create_app()

    # Start the Scheduler only when running the server (not during tests)
    scheduler.start()
    app.logger.info("Scheduler started")

    socketio.run(app, debug=True)
