import logging
from flask import Flask, jsonify
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Settings
from exceptions import AuthenticationError


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
login_manager = LoginManager()


@login_manager.request_loader
def load_caller(request):
    """Build the caller from identity headers set by the API gateway."""
    from authorization import ROLES, Caller

    user_id = (request.headers.get('X-User-Id') or '').strip()
    if not user_id:
        return None
    role = (request.headers.get('X-User-Role') or 'viewer').strip().lower()
    if role not in ROLES:
        logging.warning(f"Rejected identity {user_id} with unknown role {role!r}")
        return None
    return Caller(user_id, role)


@login_manager.unauthorized_handler
def unauthorized():
    error = AuthenticationError('authentication required')
    return jsonify(error.to_dict()), int(error.status_code)


def create_app(settings=None, content_directory=None, notifier=None, classifier=None, clock=None):
    """Application factory. Collaborators left as None are built from settings."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )

    app = Flask(__name__)
    app.secret_key = settings.SESSION_SECRET
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=2, x_host=2, x_for=2)

    app.config["TESTING"] = settings.TESTING
    app.config["SQLALCHEMY_DATABASE_URI"] = settings.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if not settings.DATABASE_URL.startswith("sqlite"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_recycle": 300,
            "pool_pre_ping": True,
        }

    db.init_app(app)
    login_manager.init_app(app)

    from services import build_services
    from models import utcnow

    with app.app_context():
        # Import models to ensure tables are created
        import models  # noqa: F401
        db.create_all()
        logging.info("Database tables created")

    app.extensions["moderation"] = build_services(
        db.session,
        settings,
        content_directory=content_directory,
        notifier=notifier,
        classifier=classifier,
        clock=clock or utcnow,
    )

    from routes.errors import errors_bp
    from routes.moderation import moderation_bp
    from routes.filters import filters_bp
    from routes.sanctions import sanctions_bp

    app.register_blueprint(errors_bp)
    app.register_blueprint(moderation_bp)
    app.register_blueprint(filters_bp)
    app.register_blueprint(sanctions_bp)

    return app
