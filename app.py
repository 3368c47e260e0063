# app.py
"""
Flask Application Factory for the GiftGenie API

This application factory wires together:
- Environment-based configuration
- Logging with optional rotating log file
- SQLAlchemy / in-memory storage behind one adapter
- Redis for rate limits, audit entries and analytics caching
- Celery reminder worker
- Session authentication, CSRF protection, CORS and security headers
- JSON error handling, health checks and operational CLI commands
"""

import os
import time
import logging
import logging.handlers
from datetime import datetime, date, timezone
from typing import Optional

import click
import redis
from flask import Flask, request, jsonify, g
from flask_cors import CORS
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from sqlalchemy import event
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config.settings import get_config
from core.database_models import db
from core.security_manager import init_security_manager
from core.storage import create_storage, get_storage
from api.auth import auth_bp, limiter
from api.analytics import analytics_bp
from api.blog import blog_bp, make_excerpt
from api.friends import friends_bp
from api.gifts import gifts_bp
from api.reminders import reminders_bp
from middleware.security import load_current_user, security_headers
from routes.spa import spa_bp
from tasks.reminder_tasks import configure_celery

HANDLER_NAME = 'giftgenie'

SAMPLE_BLOG_POSTS = [
    {
        'title': 'How GiftGenie Picks the Perfect Gift',
        'content': (
            '<p>GiftGenie looks at the personality traits and interests you record for each '
            'friend and matches them against thousands of gift ideas.</p>'
            '<p>Every recommendation shows how well it fits, which traits it matches and where '
            'to buy it in your friend\'s country.</p>'
        ),
    },
    {
        'title': 'Never Miss a Birthday Again',
        'content': (
            '<p>Gift reminders email you ahead of birthdays, anniversaries and holidays. '
            'Choose how many days in advance you want to hear about it and mark reminders as '
            'recurring so they roll over to next year automatically.</p>'
        ),
    },
    {
        'title': 'Gift Ideas on Any Budget',
        'content': (
            '<p>Set a budget in your friend\'s currency and GiftGenie keeps every suggestion '
            'within it, from thoughtful small gestures to premium experiences.</p>'
        ),
    },
]


def setup_logging(app: Flask) -> None:
    """
    Configure logging for the application and every module logger

    Flask's default handler is replaced by a stream handler; LOG_FILE adds
    a rotating file handler with a detailed format.
    """
    # Remove default Flask handlers to avoid duplicate logs
    app.logger.handlers.clear()
    app.logger.propagate = True

    journal_formatter = logging.Formatter(
        fmt='%(name)s[%(process)d]: %(levelname)s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Drop handlers installed by an earlier create_app call
    for handler in list(root_logger.handlers):
        if handler.get_name() == HANDLER_NAME:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.set_name(HANDLER_NAME)
    stream_handler.setFormatter(journal_formatter)
    stream_handler.setLevel(log_level)
    root_logger.addHandler(stream_handler)

    log_file = app.config.get('LOG_FILE')
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.set_name(HANDLER_NAME)
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    logging.getLogger('security').setLevel(app.config.get('AUDIT_LOG_LEVEL', 'INFO'))

    # Suppress verbose third-party logs in production
    if not app.debug:
        for noisy in ('werkzeug', 'urllib3', 'openai', 'httpx'):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def create_redis_client(app: Flask) -> Optional[redis.Redis]:
    """
    Redis client for audit entries and analytics caching

    Returns None when REDIS_URL is not set or Redis cannot be reached.
    """
    redis_url = app.config.get('REDIS_URL')
    if not redis_url:
        app.logger.info("REDIS_URL not set, running without Redis")
        return None

    client = redis.Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30
    )
    try:
        client.ping()
        app.logger.info("Redis client connected successfully")
    except redis.RedisError as e:
        app.logger.error(f"Redis connection failed, continuing without it: {e}")
        return None
    return client


def configure_database(app: Flask) -> None:
    """
    Configure SQLAlchemy with pooling and slow query logging
    """
    database_url = app.config['SQLALCHEMY_DATABASE_URI']

    engine_options = {'pool_pre_ping': True}
    if not database_url.startswith('sqlite'):
        engine_options.update({
            'pool_size': app.config.get('DB_POOL_SIZE', 10),
            'max_overflow': app.config.get('DB_MAX_OVERFLOW', 20),
            'pool_recycle': 3600,
        })
    if database_url.startswith('postgresql'):
        engine_options['connect_args'] = {
            'application_name': 'giftgenie',
            'connect_timeout': 10,
        }
    app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', engine_options)

    db.init_app(app)

    threshold = app.config.get('SLOW_QUERY_THRESHOLD', 1.0)
    with app.app_context():
        engine = db.engine

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Log slow queries"""
        total = time.perf_counter() - getattr(context, '_query_start_time', time.perf_counter())
        if total > threshold:
            app.logger.warning(f"Slow query ({total:.2f}s): {statement[:100]}...")

    app.logger.info(f"Database configured: {database_url.split('@')[-1] if '@' in database_url else database_url}")


def configure_security(app: Flask, redis_client: Optional[redis.Redis]) -> None:
    """
    Configure password hashing, CSRF, rate limiting and CORS
    """
    init_security_manager(app, redis_client)

    csrf = CSRFProtect()
    csrf.init_app(app)

    limiter.init_app(app)

    CORS(app,
         origins=app.config.get('CORS_ORIGINS', ['http://localhost:3000']),
         supports_credentials=True,
         allow_headers=['Content-Type', 'X-CSRFToken', 'X-CSRF-Token'])

    app.logger.info("Security features configured")


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(auth_bp)
    app.register_blueprint(friends_bp)
    app.register_blueprint(gifts_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(blog_bp)

    # Catch-all client routes go last
    app.register_blueprint(spa_bp)

    app.logger.info("Application blueprints registered")


def configure_error_handlers(app: Flask) -> None:
    """
    JSON error responses for every HTTP error
    """
    def error_response(status_code, error, message):
        return jsonify({
            'error': error,
            'message': message,
            'status_code': status_code
        }), status_code

    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return error_response(400, getattr(error, 'description', None) or 'Bad Request',
                              'Invalid request format or parameters')

    @app.errorhandler(401)
    def unauthorized(error):
        app.logger.warning(f"Unauthorized access attempt from {request.remote_addr}")
        return error_response(401, 'Authentication required', 'Authentication required')

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning(f"Forbidden access attempt from {request.remote_addr}")
        return error_response(403, 'Forbidden', 'Insufficient permissions')

    @app.errorhandler(404)
    def not_found(error):
        return error_response(404, 'Resource not found', 'The requested resource was not found')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(405, 'Method not allowed', f"{request.method} is not allowed for this endpoint")

    @app.errorhandler(413)
    def payload_too_large(error):
        return error_response(413, 'File too large', 'The uploaded file exceeds the size limit')

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
        response, status = error_response(429, 'Too many requests', 'Too many requests. Please try again later.')
        response.headers['Retry-After'] = str(getattr(error, 'retry_after', None) or 60)
        return response, status

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return error_response(500, 'Internal server error', 'An unexpected error occurred')

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return error_response(e.code or 500, e.name, e.description)

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return error_response(500, 'Internal server error', 'An unexpected error occurred')


def configure_health_checks(app: Flask) -> None:
    """
    Health check endpoints for monitoring and load balancing
    """
    @app.route('/api/health')
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'service': app.config.get('APP_NAME', 'GiftGenie API')
        })

    @app.route('/api/health/detailed')
    def detailed_health_check():
        """Detailed health check with component status"""
        storage = get_storage()
        health_status = {
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'service': app.config.get('APP_NAME', 'GiftGenie API'),
            'version': app.config.get('VERSION', '1.0.0'),
            'components': {'storage': storage.backend_name}
        }

        # Check database connectivity
        if storage.backend_name == 'database':
            try:
                storage.ping()
                health_status['components']['database'] = 'healthy'
            except Exception as e:
                health_status['components']['database'] = f'unhealthy: {str(e)}'
                health_status['status'] = 'unhealthy'
        else:
            health_status['components']['database'] = 'not configured'

        # Check Redis connectivity
        redis_client = app.extensions.get('redis')
        if app.config.get('REDIS_URL'):
            try:
                if redis_client is None:
                    raise redis.ConnectionError('client not connected')
                redis_client.ping()
                health_status['components']['redis'] = 'healthy'
            except redis.RedisError as e:
                health_status['components']['redis'] = f'unhealthy: {str(e)}'
                health_status['status'] = 'unhealthy'
        else:
            health_status['components']['redis'] = 'not configured'

        health_status['components']['openai'] = 'configured' if app.config.get('OPENAI_API_KEY') else 'not configured'
        health_status['components']['email'] = (
            'configured' if app.config.get('EMAIL_HOST') and app.config.get('EMAIL_USER')
            and app.config.get('EMAIL_PASS') else 'not configured'
        )

        status_code = 200 if health_status['status'] == 'ok' else 503
        return jsonify(health_status), status_code


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for sessions and monitoring
    """
    @app.before_request
    def before_request():
        g.start_time = time.perf_counter()
        load_current_user()

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (time.perf_counter() - g.start_time) * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def register_cli_commands(app: Flask) -> None:
    @app.cli.command('init-db')
    def init_db():
        """Create database tables."""
        db.create_all()
        click.echo('Database tables created')

    @app.cli.command('promote-admin')
    @click.argument('username')
    def promote_admin(username):
        """Grant admin rights to USERNAME."""
        storage = get_storage()
        user = storage.get_user_by_username(username)
        if not user:
            raise click.ClickException(f"User not found: {username}")
        storage.update_user(user['id'], {'isAdmin': True})
        app.logger.info(f"User {username} promoted to admin from the command line")
        click.echo(f"{username} is now an admin")

    @app.cli.command('check-reminders')
    def check_reminders():
        """Send every reminder that is due today."""
        from services.reminders import get_reminder_service
        summary = get_reminder_service().check_due_reminders(date.today())
        click.echo(
            f"Checked {summary['checked']}: {summary['sent']} sent, "
            f"{summary['skipped']} skipped, {summary['failed']} failed"
        )

    @app.cli.command('seed-blog')
    @click.argument('author')
    def seed_blog(author):
        """Create sample blog posts authored by the admin AUTHOR."""
        storage = get_storage()
        user = storage.get_user_by_username(author)
        if not user or not user.get('isAdmin'):
            raise click.ClickException(f"{author} is not an admin user")

        existing = {post['title'] for post in storage.get_all_blog_posts(include_unpublished=True)}
        created = 0
        for sample in SAMPLE_BLOG_POSTS:
            if sample['title'] in existing:
                continue
            storage.create_blog_post({
                'title': sample['title'],
                'content': sample['content'],
                'excerpt': make_excerpt(sample['content']),
                'published': True,
            }, user['id'])
            created += 1
        click.echo(f"Created {created} blog posts")


def create_app(config_name: str = None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: Configuration environment ('development', 'testing', 'production')

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__, static_folder=None)

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(get_config(config_name))

    # Configure proxy handling for production deployment behind a reverse proxy
    if config_name == 'production':
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app)
    app.logger.info(f"Starting GiftGenie API in {config_name} mode")

    redis_client = create_redis_client(app)
    app.extensions['redis'] = redis_client

    configure_database(app)
    Migrate(app, db)
    create_storage(app)

    configure_celery(app)
    configure_security(app, redis_client)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app)
    configure_request_middleware(app)
    register_cli_commands(app)

    # Create database tables in development (use migrations elsewhere)
    if config_name == 'development' and app.config['STORAGE_BACKEND'] == 'database':
        with app.app_context():
            db.create_all()
            app.logger.info("Database tables created (development mode)")

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    # Development server
    app = create_app('development')
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
