from __future__ import annotations

import logging
from typing import Any

import click
from dotenv import load_dotenv
from flask import Flask, current_app
from flask_cors import CORS

from app.config import get_config
from app.db import get_db, init_mongo, seed_roles
from app.middlewares.compression import init_compression
from app.middlewares.error_handler import init_error_handlers
from app.middlewares.logging import init_request_logging
from app.middlewares.rate_limit import init_rate_limiting
from app.middlewares.request_id import init_request_id
from app.middlewares.security_headers import init_security_headers
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def get_cms():
    cms = current_app.extensions.get("cms_client")
    if cms is None:
        raise RuntimeError("CMS client not initialized")
    return cms


def create_app(mongo_client: Any = None, cms_client: Any = None) -> Flask:
    load_dotenv()

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.json.sort_keys = False

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Session-Token"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_compression(app)
    init_error_handlers(app)

    init_mongo(app, mongo_client)

    if cms_client is None:
        from services.cms_client import ContentstackClient

        cms_client = ContentstackClient.from_config(cfg)
        if not cms_client.configured:
            logger.warning("Contentstack credentials not configured; course endpoints will fail")
    app.extensions["cms_client"] = cms_client

    # Routes import the service layer, which imports app.utils; keep them out of module import time.
    from app.routes.auth import auth_bp
    from app.routes.core import core_bp
    from app.routes.courses import courses_bp
    from app.routes.roles import roles_bp
    from app.routes.taxonomy import taxonomy_bp
    from app.routes.training_plans import training_plans_bp
    from app.routes.users import users_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(roles_bp, url_prefix="/api/roles")
    app.register_blueprint(courses_bp, url_prefix="/api")
    app.register_blueprint(taxonomy_bp, url_prefix="/api/taxonomy")
    app.register_blueprint(training_plans_bp, url_prefix="/api/training-plans")

    _register_cli(app)
    return app


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create indexes, seed the built-in roles and the first superadmin."""
        from services.users import seed_superadmin

        cfg = current_app.config["CFG"]
        db = get_db()
        created = seed_roles(db)
        click.echo(f"Roles created: {created}")

        if not cfg.SUPERADMIN_PASSWORD:
            click.echo("SUPERADMIN_PASSWORD not set; skipping superadmin")
            return
        if seed_superadmin(db, cfg.SUPERADMIN_EMAIL, cfg.SUPERADMIN_PASSWORD):
            click.echo(f"Superadmin created: {cfg.SUPERADMIN_EMAIL}")
        else:
            click.echo("Superadmin already exists")
