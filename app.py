from flask import Flask, jsonify
from flask_cors import CORS
import os
from dotenv import load_dotenv
from datetime import timedelta
from werkzeug.exceptions import HTTPException

# 1. IMPORT EXTENSIONS
from extensions import db, migrate, jwt, mail, socketio, scheduler
from scheduler import init_scheduler

load_dotenv()


def _flag(name, default='false'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config_overrides=None):
    """
    The Application Factory.
    Creates and configures the app, but does not run it.
    ``config_overrides`` is applied before the extensions are initialized.
    """
    app = Flask(__name__)

    # --- CONFIGURATION ---
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'default_secret_key')
    # Fix Postgres URL for SQLAlchemy
    database_url = os.getenv('DATABASE_URL', 'sqlite:///sahyog.db')
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'fallback-secret-key')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=int(os.getenv('JWT_EXPIRES_HOURS', 24)))
    app.config['ALLOW_ADMIN_SIGNUP'] = _flag('ALLOW_ADMIN_SIGNUP')

    # --- EMAIL CONFIGURATION ---
    app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', 587))
    app.config['MAIL_USE_TLS'] = _flag('MAIL_USE_TLS', 'true')
    app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME')
    app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
    app.config['MAIL_DEFAULT_SENDER'] = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@sahyog.org')

    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

    # --- INITIALIZE EXTENSIONS ---
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)
    socketio.init_app(app)
    # Note: We init scheduler here, but start it in __main__
    scheduler.init_app(app)

    # --- CORS CONFIGURATION ---
    origins = os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5000')
    CORS(app, resources={
        r"/api/*": {
            "origins": [o.strip() for o in origins.split(',') if o.strip()],
            "methods": ["GET", "POST", "PATCH", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # --- REGISTER BLUEPRINTS ---
    # Import inside the function to avoid circular imports
    import security
    from realtime import init_realtime
    from routes.auth import auth_bp
    from routes.ngos import ngos_bp
    from routes.donations import donations_bp
    from routes.messaging import messaging_bp
    from routes.analytics import analytics_bp

    security.init_app(app)
    init_realtime(app)
    app.register_blueprint(auth_bp)
    app.register_blueprint(ngos_bp)
    app.register_blueprint(donations_bp)
    app.register_blueprint(messaging_bp)
    app.register_blueprint(analytics_bp)

    # --- JSON ERRORS ---
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'message': e.description}), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({'message': 'Server error'}), 500

    return app


# --- ENTRY POINT ---
# This only runs if you type 'python app.py'
if __name__ == "__main__":
    app = create_app()

    with app.app_context():
        db.create_all()

    # Start the Scheduler only when running the server (not during tests)
    init_scheduler(app)

    socketio.run(app, host=os.getenv('HOST', '127.0.0.1'), port=int(os.getenv('PORT', 5000)),
                 debug=_flag('FLASK_DEBUG'))
