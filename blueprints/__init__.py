"""
Blueprint registration for the CloudPrep API.

All blueprints are registered without URL prefixes; devices call the
routes exactly as documented.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.health import bp as health_bp
    from blueprints.exam_types import bp as exam_types_bp
    from blueprints.exam_attempts import bp as exam_attempts_bp
    from blueprints.stats import bp as stats_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(exam_types_bp)
    app.register_blueprint(exam_attempts_bp)
    app.register_blueprint(stats_bp)
