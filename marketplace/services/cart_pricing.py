"""
Cart validation and pricing calculator.

Pure functions over cart lines and an optional coupon:
- MOQ (Minimum Order Quantity) and stock validation
- Coupon validation and discount calculation
- Per-supplier breakdown with pluggable delivery fees
- Cart totals

Nothing here touches the database or raises for business conditions;
failures come back as ValidationResult objects or zero amounts.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from marketplace.utils.dates import DateLike, has_passed
from marketplace.utils.formatters import Number, format_money, quantize_money, to_decimal

DISCOUNT_FIXED = 'fixed'
DISCOUNT_PERCENTAGE = 'percentage'

ZERO = Decimal('0.00')


@dataclass
class CartLine:
    """A product line in a buyer's cart."""
    product_id: int
    supplier_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    moq: int
    stock: int
    line_total: Optional[Decimal] = None
    item_id: Optional[str] = None
    rfq_id: Optional[int] = None
    quote_id: Optional[int] = None
    is_price_locked: bool = False

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price)
        if self.line_total is None:
            self.line_total = quantize_money(self.unit_price * self.quantity)
        else:
            self.line_total = to_decimal(self.line_total)
        if self.item_id is None:
            self.item_id = generate_cart_item_id(self.product_id, self.rfq_id)


@dataclass
class CouponTerms:
    """Read-only view of a coupon as the calculator needs it."""
    code: str
    discount_type: str
    value: Decimal
    min_order_value: Decimal
    expiry_date: DateLike
    max_discount: Optional[Decimal] = None
    applicable_product_ids: List[int] = field(default_factory=list)
    applicable_supplier_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        self.value = to_decimal(self.value)
        self.min_order_value = to_decimal(self.min_order_value)
        if self.max_discount is not None:
            self.max_discount = to_decimal(self.max_discount)


@dataclass
class SupplierBreakdown:
    supplier_id: int
    supplier_name: str
    items: List[CartLine] = field(default_factory=list)
    subtotal: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    item_count: int = 0


@dataclass
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    supplier_breakdown: List[SupplierBreakdown]


@dataclass
class ValidationResult:
    valid: bool
    message: Optional[str] = None

    def __bool__(self):
        return self.valid


@dataclass
class CartItemValidation:
    item_id: str
    is_valid: bool
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class CartValidation:
    is_valid: bool
    item_validations: List[CartItemValidation]
    cart_errors: List[str]


DeliveryFeePolicy = Callable[[SupplierBreakdown], Decimal]
SupplierNameResolver = Callable[[int], Optional[str]]


# ============================================================================
# MOQ and Stock Validation
# ============================================================================

def validate_moq(item: CartLine) -> ValidationResult:
    """Check that a cart line meets the product's minimum order quantity."""
    if item.quantity < item.moq:
        return ValidationResult(
            valid=False,
            message=(
                f"Minimum order quantity for {item.product_name} is {item.moq} units. "
                f"You have {item.quantity}."
            )
        )
    return ValidationResult(valid=True)


def validate_stock(item: CartLine) -> ValidationResult:
    """Check that the requested quantity is available."""
    if item.quantity > item.stock:
        return ValidationResult(
            valid=False,
            message=f"Only {item.stock} units of {item.product_name} available in stock."
        )
    return ValidationResult(valid=True)


def validate_cart_item(item: CartLine) -> CartItemValidation:
    """Run MOQ and stock checks for one line."""
    moq_result = validate_moq(item)
    stock_result = validate_stock(item)

    errors = {}
    if not moq_result.valid:
        errors['moq_error'] = moq_result.message
    if not stock_result.valid:
        errors['stock_error'] = stock_result.message

    return CartItemValidation(
        item_id=item.item_id,
        is_valid=moq_result.valid and stock_result.valid,
        errors=errors
    )


def validate_cart(
    items: List[CartLine],
    coupon: Optional[CouponTerms] = None,
    now: Optional[datetime] = None,
    currency_symbol: str = '৳'
) -> CartValidation:
    """Validate every line plus cart-level rules (empty cart, coupon usability)."""
    item_validations = [validate_cart_item(item) for item in items]
    cart_errors = []

    if coupon:
        subtotal = calculate_subtotal(items)
        if has_passed(coupon.expiry_date, now):
            cart_errors.append(f'Coupon "{coupon.code}" has expired.')
        if subtotal < coupon.min_order_value:
            cart_errors.append(
                f"Minimum order of {format_money(coupon.min_order_value, currency_symbol)} "
                f'required for coupon "{coupon.code}".'
            )

    if not items:
        cart_errors.append('Your cart is empty.')

    return CartValidation(
        is_valid=all(v.is_valid for v in item_validations) and not cart_errors,
        item_validations=item_validations,
        cart_errors=cart_errors
    )


# ============================================================================
# Supplier Breakdown
# ============================================================================

def flat_delivery_fee(amount: Number = 0) -> DeliveryFeePolicy:
    """Delivery policy charging the same fee to every supplier group."""
    fee = quantize_money(amount)

    def policy(breakdown: SupplierBreakdown) -> Decimal:
        return fee
    return policy


def per_supplier_delivery_fee(base_fee: Number, free_threshold: Number) -> DeliveryFeePolicy:
    """Delivery policy charging base_fee per supplier unless its subtotal reaches free_threshold."""
    fee = quantize_money(base_fee)
    threshold = to_decimal(free_threshold)

    def policy(breakdown: SupplierBreakdown) -> Decimal:
        if breakdown.subtotal >= threshold:
            return ZERO
        return fee
    return policy


def calculate_supplier_breakdown(
    items: Iterable[CartLine],
    delivery_policy: Optional[DeliveryFeePolicy] = None,
    supplier_name: Optional[SupplierNameResolver] = None
) -> List[SupplierBreakdown]:
    """
    Group cart lines by supplier, preserving first-seen order.

    Supplier names come from the optional resolver; unresolved suppliers
    get the placeholder "Supplier #<id>".
    """
    delivery_policy = delivery_policy or flat_delivery_fee(0)
    breakdown: Dict[int, SupplierBreakdown] = {}

    for item in items:
        group = breakdown.get(item.supplier_id)
        if group is None:
            name = supplier_name(item.supplier_id) if supplier_name else None
            group = SupplierBreakdown(
                supplier_id=item.supplier_id,
                supplier_name=name or f"Supplier #{item.supplier_id}"
            )
            breakdown[item.supplier_id] = group
        group.items.append(item)
        group.subtotal += item.line_total
        group.item_count += item.quantity

    for group in breakdown.values():
        group.delivery_fee = delivery_policy(group)

    return list(breakdown.values())


# ============================================================================
# Coupons and Discounts
# ============================================================================

def validate_coupon(
    coupon: CouponTerms,
    subtotal: Number,
    items: Optional[List[CartLine]] = None,
    now: Optional[datetime] = None,
    currency_symbol: str = '৳'
) -> ValidationResult:
    """Check expiry, minimum order value and product/supplier applicability."""
    subtotal = to_decimal(subtotal)

    if has_passed(coupon.expiry_date, now):
        return ValidationResult(valid=False, message='This coupon has expired.')

    if subtotal < coupon.min_order_value:
        return ValidationResult(
            valid=False,
            message=(
                f"Minimum order of {format_money(coupon.min_order_value, currency_symbol)} "
                "required for this coupon."
            )
        )

    if coupon.applicable_product_ids and items is not None:
        if not any(item.product_id in coupon.applicable_product_ids for item in items):
            return ValidationResult(
                valid=False,
                message='This coupon is not applicable to items in your cart.'
            )

    if coupon.applicable_supplier_ids and items is not None:
        if not any(item.supplier_id in coupon.applicable_supplier_ids for item in items):
            return ValidationResult(
                valid=False,
                message='This coupon is not valid for the suppliers in your cart.'
            )

    return ValidationResult(valid=True)


def _applicable_amount(coupon: CouponTerms, subtotal: Decimal, items: Optional[List[CartLine]]) -> Decimal:
    """Portion of the subtotal a scoped coupon applies to."""
    if items is None:
        return subtotal
    if coupon.applicable_product_ids:
        return sum(
            (item.line_total for item in items if item.product_id in coupon.applicable_product_ids),
            Decimal('0')
        )
    if coupon.applicable_supplier_ids:
        return sum(
            (item.line_total for item in items if item.supplier_id in coupon.applicable_supplier_ids),
            Decimal('0')
        )
    return subtotal


def calculate_discount(
    coupon: CouponTerms,
    subtotal: Number,
    items: Optional[List[CartLine]] = None,
    now: Optional[datetime] = None
) -> Decimal:
    """
    Discount granted by a coupon.

    Expired, below-minimum or non-applicable coupons give 0. Fixed coupons
    never exceed the applicable amount; percentage coupons are capped by
    max_discount and clamped to the applicable amount as well.
    """
    subtotal = to_decimal(subtotal)
    if not validate_coupon(coupon, subtotal, items, now).valid:
        return ZERO

    applicable = _applicable_amount(coupon, subtotal, items)

    if coupon.discount_type == DISCOUNT_FIXED:
        discount = min(coupon.value, applicable)
    else:
        discount = applicable * coupon.value / Decimal('100')
        if coupon.max_discount and discount > coupon.max_discount:
            discount = coupon.max_discount
        discount = min(discount, applicable)

    return quantize_money(max(discount, Decimal('0')))


# ============================================================================
# Cart Totals
# ============================================================================

def calculate_subtotal(items: Iterable[CartLine]) -> Decimal:
    return sum((item.line_total for item in items), Decimal('0'))


def calculate_cart_totals(
    items: List[CartLine],
    coupon: Optional[CouponTerms] = None,
    delivery_fee: Optional[Number] = None,
    delivery_policy: Optional[DeliveryFeePolicy] = None,
    supplier_name: Optional[SupplierNameResolver] = None,
    now: Optional[datetime] = None
) -> CartTotals:
    """
    Compute subtotal, discount, delivery fee, total and supplier breakdown.

    delivery_fee overrides the policy-derived fee when given; by default
    delivery is free. The total is never negative.
    """
    subtotal = calculate_subtotal(items)
    supplier_breakdown = calculate_supplier_breakdown(items, delivery_policy, supplier_name)

    if delivery_fee is not None:
        fee = quantize_money(delivery_fee)
    else:
        fee = sum((group.delivery_fee for group in supplier_breakdown), ZERO)

    discount = calculate_discount(coupon, subtotal, items, now) if coupon else ZERO
    total = max(ZERO, subtotal - discount + fee)

    return CartTotals(
        subtotal=quantize_money(subtotal),
        discount=discount,
        delivery_fee=quantize_money(fee),
        total=quantize_money(total),
        supplier_breakdown=supplier_breakdown
    )


# ============================================================================
# Helpers
# ============================================================================

def generate_cart_item_id(product_id: int, rfq_id: Optional[int] = None) -> str:
    """Stable cart key: negotiated lines never merge with standard ones."""
    return f"{product_id}-rfq-{rfq_id}" if rfq_id else f"{product_id}-std"


def merge_guest_cart(guest_items: List[CartLine], user_items: List[CartLine]) -> List[CartLine]:
    """
    Merge an anonymous cart into the signed-in buyer's cart.

    Lines for the same product and RFQ have their quantities added, capped
    at available stock; new lines are appended.
    """
    merged = list(user_items)

    for guest_item in guest_items:
        index = next(
            (i for i, user_item in enumerate(merged)
             if user_item.product_id == guest_item.product_id and user_item.rfq_id == guest_item.rfq_id),
            None
        )
        if index is None:
            merged.append(guest_item)
            continue

        existing = merged[index]
        quantity = min(existing.quantity + guest_item.quantity, existing.stock)
        merged[index] = CartLine(
            product_id=existing.product_id,
            supplier_id=existing.supplier_id,
            product_name=existing.product_name,
            quantity=quantity,
            unit_price=existing.unit_price,
            moq=existing.moq,
            stock=existing.stock,
            item_id=existing.item_id,
            rfq_id=existing.rfq_id,
            quote_id=existing.quote_id,
            is_price_locked=existing.is_price_locked
        )

    return merged


def calculate_savings(items: Iterable[CartLine], original_prices: Dict[int, Number]) -> Decimal:
    """Total saved against list prices (negotiated prices below list)."""
    savings = Decimal('0')
    for item in items:
        original = to_decimal(original_prices.get(item.product_id, item.unit_price))
        savings += max(Decimal('0'), (original - item.unit_price) * item.quantity)
    return quantize_money(savings)
