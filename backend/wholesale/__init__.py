# backend/wholesale/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "wholesale" logger; service module loggers are its children
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.pricing import pricing_bp
    from .routes.flat_taxes import flat_taxes_bp
    from .routes.price_memory import price_memory_bp
    from .routes.compliance import compliance_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(flat_taxes_bp)
    app.register_blueprint(price_memory_bp)
    app.register_blueprint(compliance_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
