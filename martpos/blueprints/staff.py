"""Staff management blueprint (shop admin or higher, tenant scoped)."""
from flask import Blueprint, request, jsonify, g

from martpos.decorators.permissions import shop_admin_or_higher
from martpos.exceptions import BusinessLogicError
from martpos.middleware import require_tenant_access
from martpos.services import get_services

staff_bp = Blueprint('staff', __name__, url_prefix='/api/staff')

MAX_PAGE_SIZE = 100


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _int_arg(name, default, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise BusinessLogicError(f'{name} must be an integer', 'VALIDATION_ERROR')
    if value < 0:
        raise BusinessLogicError(f'{name} must not be negative', 'VALIDATION_ERROR')
    return min(value, maximum) if maximum else value


@staff_bp.route('', methods=['GET'])
@require_tenant_access
@shop_admin_or_higher
def list_staff():
    limit = _int_arg('limit', 20, MAX_PAGE_SIZE)
    offset = _int_arg('offset', 0)
    items, total = get_services().staff.list(
        g.tenant_id,
        role=request.args.get('role'),
        status=request.args.get('status'),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        'success': True,
        'data': [s.to_dict() for s in items],
        'pagination': {'limit': limit, 'offset': offset, 'total': total},
    })


@staff_bp.route('', methods=['POST'])
@require_tenant_access
@shop_admin_or_higher
def create_staff():
    result = get_services().staff.create(g.principal, g.tenant_id, _json_body())
    return jsonify({'success': True, 'data': result}), 201


@staff_bp.route('/<staff_id>', methods=['GET'])
@require_tenant_access
@shop_admin_or_higher
def get_staff(staff_id):
    staff = get_services().staff.get(g.tenant_id, staff_id)
    return jsonify({'success': True, 'data': staff.to_dict()})


@staff_bp.route('/<staff_id>', methods=['PUT'])
@require_tenant_access
@shop_admin_or_higher
def update_staff(staff_id):
    data = _json_body()
    data.pop('tenantId', None)
    staff = get_services().staff.update(g.principal, g.tenant_id, staff_id, data)
    return jsonify({'success': True, 'data': staff.to_dict()})


@staff_bp.route('/<staff_id>', methods=['DELETE'])
@require_tenant_access
@shop_admin_or_higher
def delete_staff(staff_id):
    get_services().staff.delete(g.principal, g.tenant_id, staff_id)
    return jsonify({'success': True, 'message': 'Staff deleted successfully'})


@staff_bp.route('/<staff_id>/suspend', methods=['POST'])
@require_tenant_access
@shop_admin_or_higher
def suspend_staff(staff_id):
    reason = _json_body().get('reason', '')
    get_services().staff.suspend(g.principal, g.tenant_id, staff_id, reason)
    return jsonify({'success': True, 'message': 'Staff suspended successfully'})


@staff_bp.route('/<staff_id>/activate', methods=['POST'])
@require_tenant_access
@shop_admin_or_higher
def activate_staff(staff_id):
    get_services().staff.activate(g.principal, g.tenant_id, staff_id)
    return jsonify({'success': True, 'message': 'Staff activated successfully'})
