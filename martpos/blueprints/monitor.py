"""
Live monitoring blueprint.

/api/monitor/stream relays Event Channel traffic as Server-Sent Events;
/api/monitor/errors lists recorded SYSTEM_ERROR entries. Shop admins only see
events of their own tenant.
"""
import json

from flask import Blueprint, Response, current_app, g, jsonify, request

from martpos.blueprints.audit import parse_audit_filters, visible_tenant_id
from martpos.database import get_session
from martpos.decorators.permissions import shop_admin_or_higher
from martpos.middleware import require_tenant_access
from martpos.models import AuditAction
from martpos.services.audit_service import get_audit_logs

monitor_bp = Blueprint('monitor', __name__, url_prefix='/api/monitor')

TOPICS = ('audit', 'error')


def format_sse(event):
    payload = json.dumps({'data': event['data'], 'timestamp': event['timestamp']}, default=str)
    return f"event: {event['topic']}\ndata: {payload}\n\n"


def event_visible(event, tenant_id):
    if tenant_id is None:
        return True
    data = event.get('data') or {}
    return data.get('tenantId') == tenant_id


@monitor_bp.route('/stream', methods=['GET'])
@require_tenant_access
@shop_admin_or_higher
def stream():
    requested = [t for t in request.args.get('topics', '').split(',') if t]
    topics = [t for t in requested if t in TOPICS] or list(TOPICS)
    tenant_id = visible_tenant_id()
    heartbeat = current_app.config.get('MONITOR_HEARTBEAT_SECONDS', 15)

    channel = current_app.extensions['event_channel']
    subscription = channel.subscribe(topics)
    current_app.logger.info(f"Monitor stream opened by {g.principal.user_id} topics={topics}")

    def generate():
        with subscription:
            yield ': connected\n\n'
            while not subscription.closed:
                event = subscription.get(timeout=heartbeat)
                if event is None:
                    if subscription.closed:
                        break
                    yield ': heartbeat\n\n'
                    continue
                if event_visible(event, tenant_id):
                    yield format_sse(event)

    return Response(
        generate(),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )


@monitor_bp.route('/errors', methods=['GET'])
@require_tenant_access
@shop_admin_or_higher
def errors():
    filters = parse_audit_filters(request.args)
    filters['action_filter'] = AuditAction.SYSTEM_ERROR
    logs = get_audit_logs(get_session(), visible_tenant_id(), **filters)
    return jsonify({'success': True, 'data': [log.to_dict() for log in logs]})
