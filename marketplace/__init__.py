"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from marketplace.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'error': 'Session expired. Reload and try again.'}), 400

    # Error tracking in production only
    sentry_dsn = app.config.get('SENTRY_DSN') or os.getenv('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Production: trust the reverse proxy's forwarded headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Initialize database
    init_db(app)

    # Load buyer/supplier context before each request
    from marketplace.middleware import load_actor

    @app.before_request
    def before_request_handler():
        load_actor()

    # Error Handlers
    from marketplace.exceptions import MarketplaceError

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"MarketplaceError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"MarketplaceError [{error.status_code}] {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'error': 'Not Found'}), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'error': error.description}), error.code
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'error': 'Internal Server Error'}), 500

    # Register blueprints
    from marketplace.blueprints.cart import cart_bp
    from marketplace.blueprints.rfq import rfq_bp
    from marketplace.blueprints.orders import orders_bp

    # JSON API is called by the storefront client, not HTML forms
    for bp in (cart_bp, rfq_bp, orders_bp):
        csrf.exempt(bp)
        app.register_blueprint(bp)

    # Register CLI commands
    from marketplace.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Marketplace app created (env={app.config.get('ENV')})")
    return app
