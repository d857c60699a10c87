"""
CloudPrep API — Flask Web Application

Serves the versioned question feed to offline clients, accepts completed
exam attempts and archives them to cloud storage in the background.
"""

from __future__ import annotations

import hashlib
import os
from typing import Any

from flask import Flask, Response, request as flask_request

import database
from blueprints import register_blueprints
from errors import register_error_handlers
from extensions import limiter


def create_app(test_config: dict[str, Any] | None = None,
               overrides: dict[str, Any] | None = None) -> Flask:
    """Build the API app.

    test_config is layered over TestingConfig; overrides are applied on top
    of whichever config was loaded (scripts use it to switch features off).
    """
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()
    if overrides:
        app.config.update(overrides)

    app.secret_key = app.config.get("SECRET_KEY", os.environ.get("SECRET_KEY", "dev-key-change-in-production"))

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Register database teardown
    database.init_app(app)

    # Rate limiter (disabled in testing)
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    # JSON error responses
    register_error_handlers(app)

    # Register all application blueprints
    register_blueprints(app)

    # Security headers
    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # ETag support for JSON API responses
    @app.after_request
    def set_etag(response: Response) -> Response:
        if (
            flask_request.method == "GET"
            and response.status_code == 200
            and response.content_type
            and "application/json" in response.content_type
            and response.content_length
            and response.content_length < 1_048_576  # < 1 MB
        ):
            data = response.get_data()
            etag = '"' + hashlib.md5(data).hexdigest() + '"'
            response.headers["ETag"] = etag
            if_none_match = flask_request.headers.get("If-None-Match")
            if if_none_match and if_none_match == etag:
                response.status_code = 304
                response.set_data(b"")
        return response

    # Start centralized scheduler (cloud sync passes, cleanup)
    if not app.config.get("TESTING"):
        from scheduler import init_scheduler
        app.extensions["scheduler"] = init_scheduler(app)

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
