"""Flask application factory."""
import os
import traceback

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException

from quotevoice.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'code': 'CSRF_ERROR', 'message': 'Session expired, reload the page.'}), 400

    # Sentry error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN') or os.getenv('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            profiles_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # In-process PDF cache and Redis rate limiter
    from quotevoice.services.pdf_cache_service import init_pdf_cache
    from quotevoice.services.rate_limit_service import init_rate_limiter
    init_pdf_cache(app)
    init_rate_limiter(app)

    # Prometheus metrics instrumentation
    from quotevoice.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Multi-Tenant: Load user and tenant context before each request
    from quotevoice.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        """Load user and tenant context for each request."""
        load_user_and_tenant()

    # Error Handlers
    from quotevoice.exceptions import QuoteVoiceError, StorageError

    @app.errorhandler(QuoteVoiceError)
    def handle_quotevoice_error(error):
        """Handle custom application exceptions."""
        if isinstance(error, StorageError):
            app.logger.error(f"StorageError: {error.detail}")
        elif error.status_code >= 500:
            app.logger.error(f"QuoteVoiceError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"QuoteVoiceError [{error.status_code}] {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'code': 'NOT_FOUND', 'message': 'Not Found'}), 404

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({
                'status': 'error',
                'code': error.name.upper().replace(' ', '_'),
                'message': error.description
            }), error.code

        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'code': 'INTERNAL_ERROR', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from quotevoice.blueprints.main import main_bp
    from quotevoice.blueprints.metrics import metrics_bp
    from quotevoice.blueprints.quotes import quotes_bp
    from quotevoice.blueprints.invoices import invoices_bp
    from quotevoice.blueprints.branding import branding_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)

    # JSON API authenticates with the session cookie; no form tokens
    for api_bp in (quotes_bp, invoices_bp, branding_bp):
        csrf.exempt(api_bp)
        app.register_blueprint(api_bp)

    # Register CLI commands
    from quotevoice.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
