"""Flask application factory."""
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from inventory.database import init_db
from inventory.exceptions import InventoryError, ConfigurationError, PersistenceError, ReconciliationError


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _check_config(app)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production' and not app.config.get('TESTING'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for stock alerts and purchase orders
    from inventory.services.email_service import init_mail
    init_mail(app)

    # Redis cache (dashboard aggregates)
    from inventory.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from inventory.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production' and not app.config.get('TESTING'):
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load the logged-in user before each request
    from inventory.middleware import load_current_user

    @app.before_request
    def before_request_handler():
        load_current_user()

    # Error Handlers
    @app.errorhandler(InventoryError)
    def handle_inventory_error(error):
        """Render application exceptions as JSON."""
        if isinstance(error, ReconciliationError):
            app.logger.critical(f"InventoryError [{error.status_code}]: {error.message}")
        elif isinstance(error, (PersistenceError, ConfigurationError)):
            app.logger.error(f"InventoryError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"InventoryError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Path ids beyond BIGINT never reach the database
    from inventory.utils.request_helpers import IdConverter
    app.url_map.converters['int'] = IdConverter

    # Register blueprints
    from inventory.blueprints.auth import auth_bp
    from inventory.blueprints.products import products_bp
    from inventory.blueprints.stock import stock_bp
    from inventory.blueprints.notifications import notifications_bp
    from inventory.blueprints.suppliers import suppliers_bp
    from inventory.blueprints.orders import orders_bp
    from inventory.blueprints.dashboard import dashboard_bp
    from inventory.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from inventory.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")
    app.logger.info(f"CACHE_ENABLED={app.config.get('CACHE_ENABLED')}")

    return app


def _check_config(app):
    """Fail fast on configuration the app cannot run without."""
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        raise ConfigurationError(
            'No database configured: set DATABASE_URL or DB_HOST/DB_NAME/DB_USER/DB_PASSWORD'
        )
    if not app.config.get('SECRET_KEY'):
        if app.config.get('TESTING') or app.config.get('DEBUG'):
            app.config['SECRET_KEY'] = 'dev-secret-key'
        else:
            raise ConfigurationError('SECRET_KEY must be set outside development and testing')
