"""RFQ blueprint - requests for quote, supplier quotes and buyer decisions (JSON)."""
from flask import Blueprint, request, jsonify, current_app, g
from marketplace.database import get_session
from marketplace.services.rfq_service import (
    submit_rfq,
    submit_quote,
    decide_quote,
    convert_rfq_to_order,
    list_buyer_rfqs,
    list_supplier_rfqs,
    get_rfq_for_buyer,
    get_rfq_for_supplier
)
from marketplace.services.rfq_lifecycle import parse_quote_decision
from marketplace.exceptions import BusinessLogicError, UnauthorizedError
from marketplace.middleware import require_buyer, require_supplier

rfq_bp = Blueprint('rfq', __name__, url_prefix='/api/rfq')


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _status_filter():
    return request.args.get('status', '').strip().lower() or None


@rfq_bp.route('', methods=['POST'])
@require_buyer
def create_rfq():
    """Buyer asks the product's supplier for a quote."""
    db_session = get_session()
    data = _payload()

    if not data.get('product_id'):
        raise BusinessLogicError('product_id is required.')

    rfq = submit_rfq(
        db_session,
        g.buyer_id,
        product_id=data.get('product_id'),
        quantity=data.get('quantity'),
        delivery_location=data.get('delivery_location'),
        target_price=data.get('target_price'),
        notes=data.get('notes'),
        attachments=data.get('attachments'),
        valid_days=current_app.config.get('RFQ_VALID_DAYS', 30)
    )
    return jsonify({'status': 'success', 'rfq': rfq.to_dict()}), 201


@rfq_bp.route('', methods=['GET'])
@require_buyer
def buyer_rfqs():
    db_session = get_session()
    try:
        rfqs = list_buyer_rfqs(db_session, g.buyer_id, _status_filter())
    except ValueError:
        raise BusinessLogicError(f"Unknown RFQ status '{_status_filter()}'")
    return jsonify({'rfqs': [rfq.to_dict() for rfq in rfqs]})


@rfq_bp.route('/supplier', methods=['GET'])
@require_supplier
def supplier_rfqs():
    """RFQs addressed to the signed-in supplier."""
    db_session = get_session()
    try:
        rfqs = list_supplier_rfqs(db_session, g.supplier_id, _status_filter())
    except ValueError:
        raise BusinessLogicError(f"Unknown RFQ status '{_status_filter()}'")
    return jsonify({'rfqs': [rfq.to_dict() for rfq in rfqs]})


@rfq_bp.route('/<int:rfq_id>', methods=['GET'])
def rfq_detail(rfq_id):
    """RFQ with its quotes, for the buyer who sent it or the supplier it targets."""
    db_session = get_session()

    if g.get('buyer_id'):
        try:
            rfq = get_rfq_for_buyer(db_session, rfq_id, g.buyer_id)
            return jsonify({'rfq': rfq.to_dict(include_quotes=True)})
        except UnauthorizedError:
            if not g.get('supplier_id'):
                raise
    if g.get('supplier_id'):
        rfq = get_rfq_for_supplier(db_session, rfq_id, g.supplier_id)
        return jsonify({'rfq': rfq.to_dict(include_quotes=True)})

    return jsonify({'status': 'error', 'error': 'Authentication required'}), 401


@rfq_bp.route('/<int:rfq_id>/quotes', methods=['POST'])
@require_supplier
def create_quote(rfq_id):
    """Supplier answers an RFQ."""
    db_session = get_session()
    data = _payload()

    quote = submit_quote(
        db_session,
        g.supplier_id,
        rfq_id,
        unit_price=data.get('unit_price'),
        total_price=data.get('total_price'),
        validity_period=data.get('validity_period'),
        valid_days=current_app.config.get('QUOTE_VALID_DAYS', 7),
        terms=data.get('terms'),
        delivery_time=data.get('delivery_time'),
        deposit_percentage=data.get('deposit_percentage', 0)
    )
    return jsonify({'status': 'success', 'quote': quote.to_dict()}), 201


@rfq_bp.route('/quotes/<int:quote_id>/status', methods=['PATCH'])
@require_buyer
def update_quote_status(quote_id):
    """Buyer accepts, rejects or counters a quote."""
    db_session = get_session()

    try:
        decision = parse_quote_decision(_payload())
    except ValueError as e:
        raise BusinessLogicError(str(e))

    quote = decide_quote(db_session, quote_id, g.buyer_id, decision)
    return jsonify({'status': 'success', 'quote': quote.to_dict(), 'rfq_status': quote.rfq.status.value})


@rfq_bp.route('/<int:rfq_id>/convert', methods=['POST'])
@require_buyer
def convert_to_order(rfq_id):
    """Place an order at the accepted quote's price."""
    db_session = get_session()
    data = _payload()

    order = convert_rfq_to_order(
        db_session,
        rfq_id,
        g.buyer_id,
        delivery_location=data.get('delivery_location'),
        notes=data.get('notes'),
        payment_method=data.get('payment_method')
    )
    current_app.logger.info(f"RFQ {rfq_id} converted to order {order.order_number}")
    return jsonify({'status': 'success', 'order': order.to_dict()}), 201
