"""Cart blueprint - persistent buyer cart, coupon checks and checkout (JSON)."""
from flask import Blueprint, request, jsonify, current_app, g
from marketplace.database import get_session
from marketplace.services.cart_service import (
    add_to_cart,
    update_cart_item,
    remove_cart_item,
    clear_cart,
    merge_guest_items,
    get_cart_lines,
    get_cart_summary,
    delivery_policy_from_config
)
from marketplace.services.coupon_service import check_coupon_code
from marketplace.services.order_service import checkout_cart
from marketplace.exceptions import BusinessLogicError
from marketplace.middleware import require_buyer
from marketplace.utils.formatters import to_decimal

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _summary(db_session, coupon_code=None):
    return get_cart_summary(
        db_session,
        g.buyer_id,
        coupon_code=coupon_code,
        delivery_policy=delivery_policy_from_config(current_app.config),
        currency_symbol=current_app.config.get('CURRENCY_SYMBOL', '৳')
    )


@cart_bp.route('', methods=['GET'])
@require_buyer
def view_cart():
    """Cart lines, totals, supplier breakdown and validation."""
    db_session = get_session()
    coupon_code = request.args.get('coupon_code', '').strip() or None
    return jsonify(_summary(db_session, coupon_code))


@cart_bp.route('', methods=['DELETE'])
@require_buyer
def empty_cart():
    db_session = get_session()
    deleted = clear_cart(db_session, g.buyer_id)
    return jsonify({'status': 'success', 'removed': deleted})


@cart_bp.route('/items', methods=['POST'])
@require_buyer
def add_item():
    """Add a product (optionally at an accepted quote's price) to the cart."""
    db_session = get_session()
    data = _payload()

    if not data.get('product_id'):
        raise BusinessLogicError('product_id is required.')

    item = add_to_cart(
        db_session,
        g.buyer_id,
        product_id=data.get('product_id'),
        quantity=data.get('quantity', 1),
        quote_id=data.get('quote_id')
    )
    current_app.logger.info(f"Buyer {g.buyer_id} added product {item.product_id} to cart")
    return jsonify({'status': 'success', 'item_id': item.id, 'cart': _summary(db_session)}), 201


@cart_bp.route('/items/<int:item_id>', methods=['PATCH'])
@require_buyer
def update_item(item_id):
    db_session = get_session()
    data = _payload()
    update_cart_item(db_session, g.buyer_id, item_id, data.get('quantity'))
    return jsonify({'status': 'success', 'cart': _summary(db_session)})


@cart_bp.route('/items/<int:item_id>', methods=['DELETE'])
@require_buyer
def remove_item(item_id):
    db_session = get_session()
    remove_cart_item(db_session, g.buyer_id, item_id)
    return jsonify({'status': 'success', 'cart': _summary(db_session)})


@cart_bp.route('/merge', methods=['POST'])
@require_buyer
def merge_cart():
    """Take over the lines of a cart built before sign-in."""
    db_session = get_session()
    guest_items = _payload().get('items') or []
    if not isinstance(guest_items, list):
        raise BusinessLogicError('items must be a list.')

    merged = merge_guest_items(db_session, g.buyer_id, guest_items)
    return jsonify({'status': 'success', 'merged': merged, 'cart': _summary(db_session)})


@cart_bp.route('/validate-coupon', methods=['POST'])
@require_buyer
def validate_coupon_code():
    """
    Check a coupon code against the cart.

    The subtotal comes from the buyer's cart unless the request supplies one.
    Returns 200 with the discount when usable, 400 with an error code otherwise.
    """
    db_session = get_session()
    data = _payload()

    code = (data.get('code') or '').strip()
    if not code:
        raise BusinessLogicError('Coupon code is required.')

    lines = get_cart_lines(db_session, g.buyer_id)
    if data.get('subtotal') is not None:
        try:
            subtotal = to_decimal(data.get('subtotal'))
        except ValueError as e:
            raise BusinessLogicError(str(e))
    else:
        subtotal = sum((line.line_total for line in lines), to_decimal(0))

    check = check_coupon_code(
        db_session, code, subtotal,
        buyer_id=g.buyer_id,
        items=lines or None,
        currency_symbol=current_app.config.get('CURRENCY_SYMBOL', '৳')
    )
    return jsonify(check.to_dict()), 200 if check.is_valid else 400


@cart_bp.route('/checkout', methods=['POST'])
@require_buyer
def checkout():
    """Place an order for everything in the cart."""
    db_session = get_session()
    data = _payload()

    order = checkout_cart(
        db_session,
        g.buyer_id,
        coupon_code=(data.get('coupon_code') or '').strip() or None,
        delivery_location=data.get('delivery_location'),
        notes=data.get('notes'),
        payment_method=data.get('payment_method'),
        delivery_policy=delivery_policy_from_config(current_app.config),
        currency_symbol=current_app.config.get('CURRENCY_SYMBOL', '৳')
    )
    current_app.logger.info(f"Order {order.order_number} placed by {g.buyer_id}")
    return jsonify({'status': 'success', 'order': order.to_dict()}), 201
