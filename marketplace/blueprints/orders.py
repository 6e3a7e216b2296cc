"""Orders blueprint - buyer order history and status changes (JSON)."""
from flask import Blueprint, request, jsonify, g
from marketplace.database import get_session
from marketplace.services.order_service import (
    list_buyer_orders,
    get_order_for_buyer,
    parse_order_action,
    apply_order_action
)
from marketplace.exceptions import BusinessLogicError
from marketplace.middleware import require_buyer

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['GET'])
@require_buyer
def list_orders():
    db_session = get_session()
    status = request.args.get('status', '').strip().lower() or None
    try:
        orders = list_buyer_orders(db_session, g.buyer_id, status)
    except ValueError:
        raise BusinessLogicError(f"Unknown order status '{status}'")
    return jsonify({'orders': [order.to_dict() for order in orders]})


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_buyer
def order_detail(order_id):
    db_session = get_session()
    order = get_order_for_buyer(db_session, order_id, g.buyer_id)
    data = order.to_dict()
    data['is_cancellable'] = order.is_cancellable
    return jsonify({'order': data})


@orders_bp.route('/<int:order_id>/status', methods=['PATCH'])
@require_buyer
def update_order_status(order_id):
    """Cancel an order or move it along: {'action': 'cancel'|'update', ...}."""
    db_session = get_session()

    try:
        action = parse_order_action(request.get_json(silent=True) or {})
    except ValueError as e:
        raise BusinessLogicError(str(e))

    order = apply_order_action(db_session, order_id, g.buyer_id, action)
    return jsonify({'status': 'success', 'order': order.to_dict()})
