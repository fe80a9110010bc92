"""Audit log blueprint: read-only access to a tenant's audit trail."""
from datetime import datetime

from flask import Blueprint, request, jsonify, g

from martpos.database import get_session
from martpos.decorators.permissions import shop_admin_or_higher
from martpos.exceptions import BusinessLogicError
from martpos.middleware import require_tenant_access
from martpos.models import AuditAction
from martpos.services.audit_service import get_audit_logs

audit_bp = Blueprint('audit', __name__, url_prefix='/api/audit')

MAX_PAGE_SIZE = 200


def parse_audit_filters(args):
    """Validated filter kwargs for get_audit_logs from query-string args."""
    try:
        limit = min(int(args.get('limit', 50)), MAX_PAGE_SIZE)
        offset = int(args.get('offset', 0))
    except ValueError:
        raise BusinessLogicError('limit and offset must be integers', 'VALIDATION_ERROR')
    if limit < 1 or offset < 0:
        raise BusinessLogicError('limit must be positive and offset not negative', 'VALIDATION_ERROR')

    action = None
    if args.get('action'):
        try:
            action = AuditAction(args['action'])
        except ValueError:
            raise BusinessLogicError(f"Unknown action: {args['action']}", 'VALIDATION_ERROR')

    since = None
    if args.get('since'):
        try:
            since = datetime.fromisoformat(args['since'])
        except ValueError:
            raise BusinessLogicError('since must be an ISO-8601 timestamp', 'VALIDATION_ERROR')

    return {
        'limit': limit,
        'offset': offset,
        'action_filter': action,
        'user_id_filter': args.get('userId'),
        'resource_type_filter': args.get('resourceType'),
        'since': since,
    }


def visible_tenant_id():
    """Tenant whose entries may be read: a super admin without tenantId sees every tenant."""
    if g.principal.is_super_admin and not request.args.get('tenantId'):
        return None
    return g.tenant_id


@audit_bp.route('', methods=['GET'])
@require_tenant_access
@shop_admin_or_higher
def list_audit_logs():
    filters = parse_audit_filters(request.args)
    logs = get_audit_logs(get_session(), visible_tenant_id(), **filters)
    return jsonify({
        'success': True,
        'data': [log.to_dict() for log in logs],
        'pagination': {'limit': filters['limit'], 'offset': filters['offset']},
    })
