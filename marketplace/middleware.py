"""Middleware for buyer and supplier context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from marketplace.database import get_session
from marketplace.models import Supplier


def load_actor():
    """
    Load the acting buyer and supplier into g (Flask's per-request global).

    Authentication happens upstream; the session carries 'buyer_id' and/or
    'supplier_id'. Sets g.buyer_id, g.supplier_id and g.supplier.
    """
    g.buyer_id = None
    g.supplier_id = None
    g.supplier = None

    buyer_id = session.get('buyer_id')
    if buyer_id:
        g.buyer_id = str(buyer_id)

    supplier_id = session.get('supplier_id')
    if supplier_id:
        try:
            supplier = get_session().query(Supplier).filter_by(id=int(supplier_id)).first()
        except (TypeError, ValueError):
            supplier = None
        if supplier:
            g.supplier = supplier
            g.supplier_id = supplier.id
        else:
            # Stale supplier in session
            current_app.logger.warning(f"Unknown supplier_id in session: {supplier_id}")
            session.pop('supplier_id', None)


def require_buyer(f):
    """
    Decorator: Require a signed-in buyer.

    Returns 401 JSON when no buyer is in the session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('buyer_id') is None:
            return jsonify({'status': 'error', 'error': 'Buyer authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_supplier(f):
    """Decorator: Require a signed-in supplier account."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('supplier_id') is None:
            return jsonify({'status': 'error', 'error': 'Supplier authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function
