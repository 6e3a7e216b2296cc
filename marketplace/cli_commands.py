"""
Flask CLI commands for marketplace maintenance.

Commands:
- flask init-db: Create all tables
- flask expire-rfqs: Mark lapsed RFQs as expired
- flask purge-carts: Remove stale cart lines
- flask create-coupon: Create a discount coupon
"""

import click
from datetime import date
from flask import current_app
from marketplace import database
from marketplace.models import Coupon, DiscountType
from marketplace.services.rfq_service import expire_stale_rfqs
from marketplace.services.cart_service import purge_stale_cart_items
from marketplace.services.coupon_service import normalize_code, find_coupon
from marketplace.utils.formatters import to_decimal


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables for every model."""
        database.create_all()
        click.echo(click.style('✅ Database tables created.', fg='green'))

    @app.cli.command('expire-rfqs')
    def expire_rfqs_command():
        """Persist 'expired' for RFQs whose expiry has passed."""
        count = expire_stale_rfqs(database.get_session())
        click.echo(f'Expired {count} RFQ(s).')

    @app.cli.command('purge-carts')
    @click.option('--days', type=int, default=None, help='Age in days (defaults to CART_EXPIRY_DAYS)')
    def purge_carts_command(days):
        """Remove cart lines untouched for too long."""
        days = days if days is not None else current_app.config.get('CART_EXPIRY_DAYS', 7)
        count = purge_stale_cart_items(database.get_session(), days=days)
        click.echo(f'Removed {count} stale cart item(s) older than {days} day(s).')

    @app.cli.command('create-coupon')
    @click.option('--code', prompt=True, help='Coupon code (stored upper-case)')
    @click.option('--type', 'discount_type', type=click.Choice([t.value for t in DiscountType]),
                  default=DiscountType.PERCENTAGE.value, help='Discount type')
    @click.option('--value', prompt=True, help='Percentage (e.g. 10) or fixed amount')
    @click.option('--min-order', default='0', help='Minimum order value')
    @click.option('--max-discount', default=None, help='Cap for percentage discounts')
    @click.option('--expires', required=True, help='Expiry date (YYYY-MM-DD)')
    @click.option('--description', default=None, help='Text shown to buyers')
    def create_coupon_command(code, discount_type, value, min_order, max_discount, expires, description):
        """Create a discount coupon."""
        db_session = database.get_session()

        try:
            expiry = date.fromisoformat(expires)
            amount = to_decimal(value)
            minimum = to_decimal(min_order)
            cap = to_decimal(max_discount) if max_discount else None
        except ValueError as e:
            click.echo(click.style(f'❌ Invalid value: {e}', fg='red'))
            return

        if amount <= 0:
            click.echo(click.style('❌ Coupon value must be greater than 0.', fg='red'))
            return
        if discount_type == DiscountType.PERCENTAGE.value and amount > 100:
            click.echo(click.style('❌ Percentage coupons cannot exceed 100.', fg='red'))
            return

        if find_coupon(db_session, code):
            click.echo(click.style(f'❌ Coupon {normalize_code(code)} already exists.', fg='red'))
            return

        try:
            coupon = Coupon(
                code=normalize_code(code),
                discount_type=discount_type,
                value=amount,
                min_order_value=minimum,
                max_discount=cap,
                expiry_date=expiry,
                description=description
            )
            db_session.add(coupon)
            db_session.commit()

            click.echo(click.style(f'\n✅ Coupon {coupon.code} created.', fg='green', bold=True))
            click.echo(f'   ID: {coupon.id}')
            click.echo(f'   Expires: {coupon.expiry_date.isoformat()}')
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error creating coupon: {str(e)}', fg='red'))
