# Overview: Flask extension instances for database and migrations; accessors for the per-app dashboard services.

import sqlite3

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE RESTRICT / SET NULL unless enabled per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_gateway():
    return current_app.extensions["paneteria.gateway"]


def get_store():
    return current_app.extensions["paneteria.store"]


def get_notifications():
    return current_app.extensions["paneteria.notifications"]
