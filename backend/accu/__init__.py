# backend/accu/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before the extensions read the config
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.registry import entities_bp, users_bp, creditors_bp, projects_bp
    from .routes.batches import batches_bp
    from .routes.loans import loans_bp
    from .routes.reclassifications import reclassifications_bp
    from .routes.marketdata import marketdata_bp
    from .routes.dashboard import dashboard_bp
    from .routes.ledger import ledger_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(entities_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(creditors_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(loans_bp)
    app.register_blueprint(reclassifications_bp)
    app.register_blueprint(marketdata_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(ledger_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
