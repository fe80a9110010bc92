"""Flask application factory."""
import atexit
import traceback

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from martpos.database import init_db, get_session


def create_app(config_object='config.Config', test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if test_config:
        app.config.update(test_config)

    production = app.config.get('ENV') == 'production'

    # Error tracking in production
    if app.config.get('SENTRY_DSN') and production:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
        )

    # Behind Nginx: trust one proxy for client IP and scheme (audit IPs, rate limit keys)
    if production:
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    from martpos.security_config import SecurityConfig
    app.extensions['security_config'] = SecurityConfig.from_mapping(app.config)

    init_db(app)

    from martpos.services.event_channel import EventChannel
    EventChannel().init_app(app)

    from martpos.services.audit_service import init_audit
    init_audit(app)

    from martpos.services.rate_limiter import init_rate_limiter
    init_rate_limiter(app)

    from martpos.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    register_error_handlers(app)

    from martpos.blueprints.auth import auth_bp
    from martpos.blueprints.staff import staff_bp
    from martpos.blueprints.audit import audit_bp
    from martpos.blueprints.monitor import monitor_bp
    from martpos.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(monitor_bp)
    app.register_blueprint(metrics_bp)

    from martpos.cli_commands import init_cli_commands
    init_cli_commands(app)

    atexit.register(shutdown_app, app)
    app.logger.info(f"MartPOS API initialised (env={app.config.get('ENV')})")
    return app


def shutdown_app(app):
    """Drain the audit writer and detach live monitoring subscribers."""
    recorder = app.extensions.get('audit_recorder')
    if recorder is not None:
        recorder.stop()
    channel = app.extensions.get('event_channel')
    if channel is not None and channel.is_open:
        channel.close()


def register_error_handlers(app):
    from martpos.exceptions import MartPosError
    from martpos.models import AuditAction, AuditStatus, ResourceType, GLOBAL_TENANT_ID

    @app.errorhandler(MartPosError)
    def handle_martpos_error(error):
        """Known application errors carry their own code and status."""
        if error.status_code >= 500:
            app.logger.error(f"MartPosError [{error.status_code}] {error.code}: {error.message}")
        else:
            app.logger.info(f"MartPosError [{error.status_code}] {error.code}: {error.message}")
        response = jsonify(error.to_dict())
        if getattr(error, 'retry_after', None):
            response.headers['Retry-After'] = str(error.retry_after)
        return response, error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        code = (error.name or 'error').upper().replace(' ', '_')
        return jsonify({'success': False, 'error': error.description, 'code': code}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        stack = traceback.format_exc()
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {stack}")

        session = get_session()
        if session is not None:
            session.rollback()

        principal = g.get('principal')
        recorder = app.extensions.get('audit_recorder')
        if recorder is not None:
            recorder.record(
                action=AuditAction.SYSTEM_ERROR,
                tenant_id=principal.tenant_id if principal else GLOBAL_TENANT_ID,
                user_id=principal.user_id if principal else 'anonymous',
                user_role=principal.role if principal else None,
                resource_type=ResourceType.SYSTEM.value,
                details={
                    'path': request.path,
                    'method': request.method,
                    'statusCode': 500,
                    'errorType': error.__class__.__name__,
                    'stack': stack,
                },
                status=AuditStatus.FAILURE,
                error_message=str(error),
            )

        production = app.config.get('ENV') == 'production'
        message = 'An unexpected error occurred' if production else str(error)
        return jsonify({'success': False, 'error': message, 'code': 'INTERNAL_ERROR'}), 500
