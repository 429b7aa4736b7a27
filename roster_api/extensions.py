# roster_api/extensions.py
import os
from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from roster_api.services.time_conversion import TimeConversionService, DEFAULT_REFERENCE_ZONE

db = SQLAlchemy()
migrate = Migrate()


def normalize_db_url(url: str) -> str:
    if not url:
        return url
    # Render / Heroku style → SQLAlchemy psycopg3 driver
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def init_db(app):
    url = os.getenv("DATABASE_URL", app.config.get("SQLALCHEMY_DATABASE_URI", "")) or ""
    app.config["SQLALCHEMY_DATABASE_URI"] = normalize_db_url(url)

    # sqlite (tests) does not take pool sizing options
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
            "pool_recycle": 270,
            "pool_size": 5,
            "max_overflow": 2,
            "pool_timeout": 30,
        }

    db.init_app(app)


def init_time_conversion(app):
    """Build the shared conversion service from REFERENCE_TIMEZONE (raises on a bad zone)."""
    zone = app.config.get("REFERENCE_TIMEZONE") or DEFAULT_REFERENCE_ZONE
    svc = TimeConversionService(zone)
    app.extensions["time_conversion"] = svc
    return svc


def get_time_service() -> TimeConversionService:
    return current_app.extensions["time_conversion"]
