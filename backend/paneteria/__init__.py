# backend/paneteria/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app, which builds the engine
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Dashboard services live for the lifetime of the app
    from .services.gateway import SqlGateway
    from .services.notification_service import NotificationCenter
    from .services.sync_service import DashboardStore

    gateway = SqlGateway(logger=app.logger)
    notifications = NotificationCenter(logger=app.logger)
    store = DashboardStore(
        gateway,
        notify=notifications.notify,
        logger=app.logger,
        realtime=app.config["REALTIME_ENABLED"],
    )
    notifications.attach(gateway)

    app.extensions["paneteria.gateway"] = gateway
    app.extensions["paneteria.notifications"] = notifications
    app.extensions["paneteria.store"] = store

    # Register blueprints
    from .routes.system import system_bp
    from .routes.session import session_bp
    from .routes.categories import categories_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.orders import orders_bp
    from .routes.dashboard import dashboard_bp
    from .routes.menu import menu_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(menu_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
