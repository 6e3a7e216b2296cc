"""
Integration tests for the RFQ / quote negotiation flow.
Covers the service layer against the database and the JSON endpoints.
"""

import pytest
from datetime import datetime, time, timedelta
from decimal import Decimal

from marketplace.models import Product, Rfq, RfqStatus, Quote, QuoteStatus, QuoteCounterOffer, Order
from marketplace.exceptions import BusinessLogicError, UnauthorizedError, InvalidTransitionError, NotFoundError
from marketplace.services.rfq_lifecycle import AcceptQuote, RejectQuote, CounterQuote
from marketplace.services.rfq_service import (
    submit_rfq, submit_quote, decide_quote, convert_rfq_to_order, expire_stale_rfqs,
    list_buyer_rfqs, list_supplier_rfqs, get_rfq_for_buyer
)
from marketplace.services.notification_service import list_notifications

LOCATION = 'House 7, Road 3, Dhanmondi, Dhaka'


@pytest.fixture
def rfq(session, product, buyer_id):
    """Pending RFQ for 50 units (MOQ 10)."""
    return submit_rfq(session, buyer_id, product.id, 50, LOCATION, target_price='90')


@pytest.fixture
def quote(session, rfq, supplier):
    """Supplier's quote at 95 per unit."""
    return submit_quote(session, supplier.id, rfq.id, unit_price='95.00', terms='30% advance')


class TestSubmitRfq:
    """Tests for RFQ submission."""

    def test_creates_pending_rfq(self, session, rfq, product, supplier, buyer_id):
        assert rfq.id is not None
        assert rfq.status == RfqStatus.PENDING
        assert rfq.supplier_id == supplier.id
        assert rfq.target_price == Decimal('90.00')
        assert rfq.expires_at - datetime.now() > timedelta(days=29)

        notifications = list_notifications(session, supplier.owner_id)
        assert [n.type for n in notifications] == ['rfq_received']

    def test_quantity_below_moq(self, session, product, buyer_id):
        with pytest.raises(BusinessLogicError) as exc:
            submit_rfq(session, buyer_id, product.id, 5, LOCATION)

        assert '10' in exc.value.message
        assert exc.value.payload == {'moq': 10}
        assert session.query(Rfq).count() == 0

    def test_location_too_short(self, session, product, buyer_id):
        with pytest.raises(BusinessLogicError):
            submit_rfq(session, buyer_id, product.id, 50, 'Dhk')

    def test_invalid_target_price(self, session, product, buyer_id):
        with pytest.raises(BusinessLogicError):
            submit_rfq(session, buyer_id, product.id, 50, LOCATION, target_price='-1')

    def test_unknown_product(self, session, buyer_id):
        with pytest.raises(NotFoundError):
            submit_rfq(session, buyer_id, 9999, 50, LOCATION)

    def test_custom_validity(self, session, product, buyer_id):
        now = datetime(2026, 3, 1, 10, 0)
        rfq = submit_rfq(session, buyer_id, product.id, 50, LOCATION, valid_days=10, now=now)
        assert rfq.expires_at == datetime(2026, 3, 11, 10, 0)


class TestSubmitQuote:
    """Tests for supplier quotes."""

    def test_quote_moves_rfq_to_quoted(self, session, rfq, quote, buyer_id):
        assert quote.status == QuoteStatus.PENDING
        assert quote.total_price == Decimal('4750.00')
        assert quote.validity_period > datetime.now()
        assert rfq.status == RfqStatus.QUOTED

        assert [n.type for n in list_notifications(session, buyer_id)] == ['quote_received']

    def test_second_quote_allowed_while_quoted(self, session, rfq, quote, supplier):
        second = submit_quote(session, supplier.id, rfq.id, unit_price='92.00', total_price='4500')
        assert second.total_price == Decimal('4500.00')
        assert len(rfq.quotes) == 2

    def test_other_supplier_rejected(self, session, rfq, supplier2):
        with pytest.raises(UnauthorizedError):
            submit_quote(session, supplier2.id, rfq.id, unit_price='95.00')

    @pytest.mark.parametrize('price', ['0', '-5', 'NaN', 'Infinity'])
    def test_price_must_be_positive(self, session, rfq, supplier, price):
        with pytest.raises(BusinessLogicError):
            submit_quote(session, supplier.id, rfq.id, unit_price=price)
        assert session.query(Quote).count() == 0

    def test_expired_rfq_cannot_be_quoted(self, session, product, supplier, buyer_id):
        stale = submit_rfq(session, buyer_id, product.id, 50, LOCATION, valid_days=1,
                           now=datetime.now() - timedelta(days=2))

        with pytest.raises(BusinessLogicError) as exc:
            submit_quote(session, supplier.id, stale.id, unit_price='95.00')
        assert 'expired' in exc.value.message

    def test_date_only_validity_lasts_whole_day(self, session, rfq, supplier):
        tomorrow = (datetime.now() + timedelta(days=1)).date()
        quote = submit_quote(session, supplier.id, rfq.id, unit_price='95', validity_period=tomorrow.isoformat())
        assert quote.validity_period == datetime.combine(tomorrow, time(23, 59, 59))

    def test_past_validity_rejected(self, session, rfq, supplier):
        with pytest.raises(BusinessLogicError):
            submit_quote(session, supplier.id, rfq.id, unit_price='95', validity_period='2020-01-01')


class TestDecideQuote:
    """Tests for buyer decisions on quotes."""

    def test_accept(self, session, rfq, quote, supplier, buyer_id):
        decided = decide_quote(session, quote.id, buyer_id, AcceptQuote())

        assert decided.status == QuoteStatus.ACCEPTED
        assert decided.agreed_quantity == 50
        assert rfq.status == RfqStatus.ACCEPTED
        assert 'quote_accepted' in [n.type for n in list_notifications(session, supplier.owner_id)]

    def test_accept_rejects_sibling_quotes(self, session, rfq, quote, supplier, buyer_id):
        other = submit_quote(session, supplier.id, rfq.id, unit_price='97.00')

        decide_quote(session, quote.id, buyer_id, AcceptQuote(agreed_quantity=40))

        assert session.get(Quote, other.id).status == QuoteStatus.REJECTED
        assert rfq.accepted_quote.id == quote.id

    def test_accept_below_moq(self, session, quote, buyer_id):
        with pytest.raises(BusinessLogicError):
            decide_quote(session, quote.id, buyer_id, AcceptQuote(agreed_quantity=5))
        assert session.get(Quote, quote.id).status == QuoteStatus.PENDING

    def test_accept_expired_quote(self, session, rfq, supplier, buyer_id):
        stale = submit_quote(session, supplier.id, rfq.id, unit_price='95', valid_days=1,
                             now=datetime.now() - timedelta(days=3))

        with pytest.raises(BusinessLogicError) as exc:
            decide_quote(session, stale.id, buyer_id, AcceptQuote())
        assert 'expired' in exc.value.message

    def test_reject_settles_rfq(self, session, rfq, quote, supplier, buyer_id):
        decide_quote(session, quote.id, buyer_id, RejectQuote(reason='Too expensive'))

        assert quote.status == QuoteStatus.REJECTED
        assert rfq.status == RfqStatus.REJECTED

        with pytest.raises(InvalidTransitionError):
            decide_quote(session, quote.id, buyer_id, AcceptQuote())

    def test_counter_records_history(self, session, rfq, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, CounterQuote(Decimal('88.50'), note='Volume discount?'))
        decide_quote(session, quote.id, buyer_id, CounterQuote(Decimal('90.00')))

        offers = session.query(QuoteCounterOffer).filter_by(quote_id=quote.id).order_by(QuoteCounterOffer.id).all()
        assert [o.counter_price for o in offers] == [Decimal('88.50'), Decimal('90.00')]
        assert offers[0].previous_price == Decimal('95.00')
        assert offers[0].note == 'Volume discount?'

        assert quote.status == QuoteStatus.COUNTERED
        assert quote.counter_price == Decimal('90.00')
        assert rfq.status == RfqStatus.QUOTED

    def test_countered_quote_can_be_accepted(self, session, rfq, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, CounterQuote(Decimal('88.50')))
        decide_quote(session, quote.id, buyer_id, AcceptQuote())

        assert quote.status == QuoteStatus.ACCEPTED
        assert rfq.status == RfqStatus.ACCEPTED

    def test_accepted_quote_is_final(self, session, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, AcceptQuote())

        with pytest.raises(InvalidTransitionError) as exc:
            decide_quote(session, quote.id, buyer_id, RejectQuote())
        assert exc.value.status_code == 409
        assert exc.value.payload['current_status'] == 'accepted'

    def test_other_buyer_cannot_decide(self, session, quote, other_buyer_id):
        with pytest.raises(UnauthorizedError):
            decide_quote(session, quote.id, other_buyer_id, AcceptQuote())


class TestConvertRfq:
    """Tests for turning an accepted RFQ into an order."""

    def test_convert_uses_negotiated_terms(self, session, rfq, quote, product, buyer_id):
        decide_quote(session, quote.id, buyer_id, AcceptQuote(agreed_quantity=40))

        order = convert_rfq_to_order(session, rfq.id, buyer_id)

        assert order.order_number.startswith(f'BO-{datetime.now().year}-')
        assert order.total_amount == Decimal('3800.00')
        assert order.delivery_location == LOCATION
        assert len(order.items) == 1
        assert order.items[0].quantity == 40
        assert order.items[0].rfq_id == rfq.id
        assert rfq.status == RfqStatus.CONVERTED
        assert session.get(Product, product.id).stock == 460

    def test_convert_requires_accepted_rfq(self, session, rfq, quote, buyer_id):
        with pytest.raises(InvalidTransitionError):
            convert_rfq_to_order(session, rfq.id, buyer_id)
        assert session.query(Order).count() == 0

    def test_convert_only_once(self, session, rfq, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, AcceptQuote())
        convert_rfq_to_order(session, rfq.id, buyer_id)

        with pytest.raises(InvalidTransitionError):
            convert_rfq_to_order(session, rfq.id, buyer_id)
        assert session.query(Order).count() == 1

    def test_accepted_rfq_lapses_at_expiry(self, session, rfq, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, AcceptQuote())
        rfq.expires_at = datetime.now() - timedelta(hours=1)
        session.commit()

        assert rfq.effective_status == RfqStatus.EXPIRED
        with pytest.raises(BusinessLogicError) as exc:
            convert_rfq_to_order(session, rfq.id, buyer_id)
        assert 'expired' in exc.value.message
        assert session.query(Order).count() == 0

        assert expire_stale_rfqs(session) == 1
        assert session.get(Rfq, rfq.id).status == RfqStatus.EXPIRED


class TestExpireAndList:
    def test_expire_stale_rfqs(self, session, product, buyer_id):
        fresh = submit_rfq(session, buyer_id, product.id, 50, LOCATION)
        stale = submit_rfq(session, buyer_id, product.id, 50, LOCATION, valid_days=1,
                           now=datetime.now() - timedelta(days=2))

        assert expire_stale_rfqs(session) == 1
        assert session.get(Rfq, stale.id).status == RfqStatus.EXPIRED
        assert session.get(Rfq, fresh.id).status == RfqStatus.PENDING
        assert expire_stale_rfqs(session) == 0

    def test_listing_is_scoped(self, session, rfq, supplier, supplier2, buyer_id, other_buyer_id):
        assert [r.id for r in list_buyer_rfqs(session, buyer_id)] == [rfq.id]
        assert list_buyer_rfqs(session, other_buyer_id) == []
        assert [r.id for r in list_supplier_rfqs(session, supplier.id, 'pending')] == [rfq.id]
        assert list_supplier_rfqs(session, supplier2.id) == []

        with pytest.raises(UnauthorizedError):
            get_rfq_for_buyer(session, rfq.id, other_buyer_id)


class TestRfqApi:
    """Tests for the /api/rfq endpoints."""

    def test_full_negotiation_over_http(self, session, buyer_client, supplier_client, product):
        product_id = product.id

        response = buyer_client.post('/api/rfq', json={
            'product_id': product_id,
            'quantity': 100,
            'delivery_location': LOCATION,
            'target_price': '85'
        })
        assert response.status_code == 201
        rfq_id = response.get_json()['rfq']['id']

        response = supplier_client.get('/api/rfq/supplier')
        assert [r['id'] for r in response.get_json()['rfqs']] == [rfq_id]

        response = supplier_client.post(f'/api/rfq/{rfq_id}/quotes', json={'unit_price': '90.00'})
        assert response.status_code == 201
        quote_id = response.get_json()['quote']['id']
        assert response.get_json()['quote']['total_price'] == '9000.00'

        response = buyer_client.patch(f'/api/rfq/quotes/{quote_id}/status', json={
            'status': 'countered', 'counter_price': '87.00', 'counter_note': 'Repeat order'
        })
        assert response.status_code == 200
        assert response.get_json()['quote']['status'] == 'countered'
        assert len(response.get_json()['quote']['counter_offers']) == 1

        response = buyer_client.patch(f'/api/rfq/quotes/{quote_id}/status', json={'status': 'accepted'})
        assert response.status_code == 200
        assert response.get_json()['rfq_status'] == 'accepted'

        response = buyer_client.get(f'/api/rfq/{rfq_id}')
        assert response.get_json()['rfq']['quotes'][0]['status'] == 'accepted'

        response = buyer_client.post(f'/api/rfq/{rfq_id}/convert', json={})
        assert response.status_code == 201
        assert response.get_json()['order']['total_amount'] == '9000.00'

        assert session.get(Rfq, rfq_id).status == RfqStatus.CONVERTED

    def test_requires_buyer(self, client, product):
        response = client.post('/api/rfq', json={'product_id': product.id, 'quantity': 50})
        assert response.status_code == 401

    def test_supplier_endpoints_require_supplier(self, buyer_client):
        assert buyer_client.get('/api/rfq/supplier').status_code == 401

    def test_below_moq_returns_400(self, buyer_client, product):
        response = buyer_client.post('/api/rfq', json={
            'product_id': product.id,
            'quantity': 3,
            'delivery_location': LOCATION
        })
        data = response.get_json()

        assert response.status_code == 400
        assert data['status'] == 'error'
        assert data['moq'] == 10

    def test_unknown_decision_returns_400(self, session, buyer_client, quote):
        response = buyer_client.patch(f'/api/rfq/quotes/{quote.id}/status', json={'status': 'maybe'})
        assert response.status_code == 400

    @pytest.mark.parametrize('price', ['NaN', 'Infinity'])
    def test_non_finite_quote_price_returns_400(self, supplier_client, rfq, price):
        rfq_id = rfq.id

        response = supplier_client.post(f'/api/rfq/{rfq_id}/quotes', json={'unit_price': price})

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_non_finite_counter_price_returns_400(self, session, buyer_client, quote):
        quote_id = quote.id

        response = buyer_client.patch(f'/api/rfq/quotes/{quote_id}/status', json={
            'status': 'countered', 'counter_price': 'NaN'
        })

        assert response.status_code == 400
        assert session.query(QuoteCounterOffer).count() == 0

    def test_invalid_transition_returns_409(self, session, buyer_client, quote, buyer_id):
        decide_quote(session, quote.id, buyer_id, AcceptQuote())
        quote_id = quote.id

        response = buyer_client.patch(f'/api/rfq/quotes/{quote_id}/status', json={'status': 'rejected'})

        assert response.status_code == 409
        assert response.get_json()['requested_status'] == 'rejected'

    def test_rfq_detail_hidden_from_other_buyers(self, app, rfq, other_buyer_id):
        client = app.test_client()
        with client.session_transaction() as sess:
            sess['buyer_id'] = other_buyer_id

        assert client.get(f'/api/rfq/{rfq.id}').status_code == 403
