# backend/orderdesk/__init__.py
import logging

from flask import Flask, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import MethodNotAllowed, NotFound

from .config import Config
from .extensions import db, migrate, socketio

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if app.config.get("LOG_FILE"):
        handlers.append(logging.FileHandler(app.config["LOG_FILE"]))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
    app.logger.setLevel(level)


def register_error_handlers(app: Flask) -> None:
    from .services.concurrency import PersistenceError

    @app.errorhandler(NotFound)
    def not_found(_e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(MethodNotAllowed)
    def method_not_allowed(_e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(PersistenceError)
    def persistence_error(e):
        db.session.rollback()
        app.logger.error("Unhandled persistence failure: %s", e)
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(SQLAlchemyError)
    def database_error(_e):
        db.session.rollback()
        app.logger.exception("Unhandled database error")
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config["CORS_ORIGINS"],
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "threading"),
    )

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.categories import categories_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.orders import orders_bp
    from .routes.notifications import notifications_bp
    from .routes.login_requests import login_requests_bp
    from .routes.search import search_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(login_requests_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(dashboard_bp)

    register_error_handlers(app)

    from .services.realtime_service import register_socket_handlers
    register_socket_handlers(socketio)

    allowed_origins = set(app.config["CORS_ORIGINS"])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    app.logger.info("orderdesk app created (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split("://", 1)[0])
    return app
