"""
Loyalty Points Ledger
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, overrides: dict = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        overrides: Config values applied before any extension is initialized

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Initialize caching (Redis with graceful fallback)
    from .utils.cache import init_cache
    init_cache(app)

    CORS(
        app,
        origins=app.config.get('CORS_ORIGINS', []),
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization'],
    )

    # Collaborators that services look up through app.extensions
    from .services.rate_limiter import init_rate_limiter
    from .services.identity_gateway import init_identity_gateway
    from .services.notification_service import init_notifications
    from .services.spin_service import init_spin_random
    init_rate_limiter(app)
    init_identity_gateway(app)
    init_notifications(app)
    init_spin_random(app)

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background scheduler for the daily birthday run (production only)
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'loyalty-ledger'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.rewards import rewards_bp
    from .api.admin import admin_bp
    from .webhooks.payments import payments_webhook_bp

    # Member-facing rewards routes
    app.register_blueprint(rewards_bp, url_prefix='/api/rewards')

    # Admin API routes
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # Webhook routes
    app.register_blueprint(payments_webhook_bp, url_prefix='/webhooks/payments')


def register_error_handlers(app: Flask) -> None:
    """
    Register error handlers.

    Every failure leaves as {"error": {"message", "code"}}. Unexpected
    exceptions are logged with their traceback and answered with a generic
    INTERNAL message.
    """
    from .utils.errors import ErrorCode, error_response, internal_error, not_found
    from .utils.exceptions import LoyaltyError

    http_codes = {
        401: ErrorCode.UNAUTHENTICATED,
        403: ErrorCode.PERMISSION_DENIED,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.ALREADY_EXISTS,
        429: ErrorCode.RESOURCE_EXHAUSTED,
    }

    @app.errorhandler(LoyaltyError)
    def handle_loyalty_error(error):
        db.session.rollback()
        return error_response(error.message, error.code, error.status_code, log_error=error.status_code >= 500)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 404:
            return not_found()
        if error.code >= 500:
            return internal_error()
        code = http_codes.get(error.code, ErrorCode.INVALID_ARGUMENT)
        return error_response(error.description or error.name, code, error.code, log_error=False)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception(f'Unhandled error: {error}')
        return internal_error(details={'exception': type(error).__name__})
