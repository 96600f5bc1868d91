# backend/costledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.getLogger("costledger").setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Services are built once here and reached through app.extensions
    from .engine import build_engine
    app.extensions["costledger"] = build_engine(
        db.session,
        attempts=app.config["COSTLEDGER_UOW_ATTEMPTS"],
        backoff_base=app.config["COSTLEDGER_UOW_BACKOFF"],
        sqlite_immediate=app.config["COSTLEDGER_SQLITE_IMMEDIATE"],
        history_limit=app.config["COST_HISTORY_LIMIT"],
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.costs import costs_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(costs_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
