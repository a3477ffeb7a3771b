import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DEFAULT_DB_ALIAS, transaction
from django.db.models import F, Sum
from django.utils import timezone

from common.audit import create_audit_log
from common.exceptions import (
    CustomerNotFound,
    InconsistentError,
    InsufficientStock,
    InvalidPaymentAmount,
    InvalidSaleLine,
    PaymentMismatch,
    ProductNotFound,
    SaleNotCancellable,
    SaleNotFound,
    SaleNotPayable,
    SaleNotVoidable,
    TotalsMismatch,
    UnitNotAvailable,
    UnitNotFound,
)
from common.utils import next_document_number, normalize_code, to_money
from inventory.models import Product, SerializedUnit, StockMovement
from inventory.services import apply_delta
from inventory.units import lock_unit, revert_unit_sale, sell_consigned_unit, sell_unit
from sales.models import Customer, Payment, Sale, SaleLine
from sales.rates import latest_rate, to_base

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class SaleLineInput:
    product_id: object
    quantity: int = 1
    unit_price: Decimal = ZERO
    discount: Decimal = ZERO
    serial: str = ""


@dataclass
class PaymentInput:
    method: str
    amount: Decimal
    currency: str = Payment.Currency.USD
    exchange_rate: Decimal | None = None
    reference: str = ""


@dataclass
class DraftLine:
    product_id: object
    serial: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal


@dataclass
class DraftPayment:
    method: str
    currency: str
    amount: Decimal
    exchange_rate: Decimal
    amount_base: Decimal
    reference: str


@dataclass
class SaleDraft:
    """A validated, priced sale that has not touched stock or the database."""

    customer_id: object
    user_id: object
    sale_type: str
    lines: list
    payments: list
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    sold_at: object
    order_number: str | None = None
    notes: str = ""
    paid_total: Decimal = ZERO

    @property
    def payment_status(self):
        return Sale.PaymentStatus.PAID if self.payments else Sale.PaymentStatus.PENDING

    @property
    def serials(self):
        return [line.serial for line in self.lines if line.serial]


@dataclass
class ConsignedItem:
    """A consigned unit being reported sold at its consignment price."""

    unit: SerializedUnit
    price: Decimal


def _decimal(value, name):
    try:
        return Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError):
        raise InconsistentError(f"{name} must be a decimal number.", details={name: str(value)}) from None


def _choice(choices, value, name):
    try:
        return choices(value)
    except ValueError:
        raise InconsistentError(f"Unknown {name}.", details={name: str(value)}) from None


def _prepare_line(index, line):
    serial = normalize_code(line.serial)
    quantity = int(line.quantity)
    unit_price = _decimal(line.unit_price, "unit_price")
    discount = _decimal(line.discount, "discount")
    errors = {}
    if quantity < 1:
        errors["quantity"] = "Must be at least 1."
    if serial and quantity != 1:
        errors["quantity"] = "A serialized line sells exactly one unit."
    if unit_price < 0:
        errors["unit_price"] = "Must not be negative."
    if discount < 0 or discount > quantity * unit_price:
        errors["discount"] = "Must be between zero and the line amount."
    if errors:
        raise InvalidSaleLine(details={"line": index, **errors})

    return DraftLine(
        product_id=line.product_id,
        serial=serial,
        quantity=quantity,
        unit_price=to_money(unit_price),
        discount=to_money(discount),
        subtotal=to_money(quantity * unit_price - discount),
    )


def _prepare_payment(payment, sold_at, using):
    method = _choice(Payment.Method, payment.method, "payment method")
    currency = _choice(Payment.Currency, payment.currency, "currency")
    amount = to_money(_decimal(payment.amount, "amount"))
    if amount <= 0:
        raise InvalidPaymentAmount(details={"method": method.value, "amount": str(amount)})

    if payment.exchange_rate is not None:
        rate = _decimal(payment.exchange_rate, "exchange_rate")
        if rate <= 0:
            raise InconsistentError("Exchange rate must be positive.", details={"exchange_rate": str(rate)})
    else:
        rate = latest_rate(currency, at=sold_at, using=using)

    return DraftPayment(
        method=method,
        currency=currency,
        amount=amount,
        exchange_rate=rate,
        amount_base=to_base(amount, currency, rate),
        reference=payment.reference or "",
    )


def _payment_tolerance():
    return Decimal(str(getattr(settings, "SALES_PAYMENT_TOLERANCE", "0.01")))


def prepare_sale(
    customer_id,
    user_id,
    lines,
    payments=(),
    *,
    discount=0,
    tax=0,
    sale_type=Sale.Type.SALE,
    expected_total=None,
    order_number=None,
    notes="",
    sold_at=None,
    using=DEFAULT_DB_ALIAS,
):
    """Price and validate a sale without touching stock (the DRAFT state).

    Rejects the sale when lines are malformed, when ``expected_total`` does not
    match the computed total, or when supplied payments do not reconcile to the
    total within ``SALES_PAYMENT_TOLERANCE`` once converted to the base
    currency. A sale without payments is accepted and recorded as pending.
    """
    sale_type = _choice(Sale.Type, sale_type, "sale type")
    if not lines:
        raise InvalidSaleLine("A sale needs at least one line.")

    draft_lines = [_prepare_line(index, line) for index, line in enumerate(lines, start=1)]
    serials = [line.serial for line in draft_lines if line.serial]
    repeated = sorted({serial for serial in serials if serials.count(serial) > 1})
    if repeated:
        raise InvalidSaleLine("A serial appears on more than one line.", details={"serials": repeated})

    discount = to_money(_decimal(discount, "discount"))
    tax = to_money(_decimal(tax, "tax"))
    subtotal = to_money(sum((line.subtotal for line in draft_lines), ZERO))
    total = to_money(subtotal - discount + tax)
    if discount < 0 or tax < 0 or total < 0:
        raise TotalsMismatch(
            "Discount and tax must be positive and the total must not be negative.",
            details={"subtotal": str(subtotal), "discount": str(discount), "tax": str(tax)},
        )
    if expected_total is not None and to_money(_decimal(expected_total, "total")) != total:
        raise TotalsMismatch(details={"expected_total": str(expected_total), "computed_total": str(total)})

    sold_at = sold_at or timezone.now()
    if payments and sale_type == Sale.Type.CONSIGNMENT:
        raise PaymentMismatch("Consignment sales take payments after confirmation.")
    draft_payments = [_prepare_payment(payment, sold_at, using) for payment in payments]

    paid_total = to_money(sum((payment.amount_base for payment in draft_payments), ZERO))
    if draft_payments:
        tolerance = _payment_tolerance()
        if abs(paid_total - total) > tolerance:
            logger.warning("sale_payment_mismatch", extra={"order_number": order_number})
            raise PaymentMismatch(details={"total": str(total), "paid": str(paid_total)})

    return SaleDraft(
        customer_id=customer_id,
        user_id=user_id,
        sale_type=sale_type,
        lines=draft_lines,
        payments=draft_payments,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=total,
        sold_at=sold_at,
        order_number=order_number,
        notes=notes,
        paid_total=paid_total,
    )


def next_order_number(*, using=DEFAULT_DB_ALIAS):
    prefix = timezone.localdate().strftime("V-%Y%m%d-")
    return next_document_number(Sale, "order_number", prefix, using=using)


def _lock_customer(customer_id, using):
    if customer_id is None:
        return None
    try:
        return Customer.objects.using(using).select_for_update().get(id=customer_id)
    except (Customer.DoesNotExist, ValidationError):
        raise CustomerNotFound(details={"customer_id": str(customer_id)}) from None


def _product_key(product_id):
    try:
        return str(uuid.UUID(str(product_id)))
    except ValueError:
        raise ProductNotFound(details={"product_id": str(product_id)}) from None


def _lock_products(product_ids, using):
    """Lock products in ascending id order so concurrent sales cannot deadlock."""
    ids = sorted({_product_key(product_id) for product_id in product_ids})
    products = list(
        Product.objects.using(using).select_for_update().filter(id__in=ids, is_active=True).order_by("id")
    )
    found = {str(product.id): product for product in products}
    missing = [product_id for product_id in ids if product_id not in found]
    if missing:
        raise ProductNotFound(details={"product_ids": missing})
    return found


def _lock_units(serials, using):
    units = {
        unit.serial: unit
        for unit in SerializedUnit.objects.using(using).select_for_update().filter(serial__in=sorted(serials)).order_by("serial")
    }
    missing = [serial for serial in serials if serial not in units]
    if missing:
        raise UnitNotFound(f"Serial {missing[0]} not found.", details={"serials": missing})
    return units


def _validate_stock(draft, products, units):
    demand = defaultdict(int)
    for index, line in enumerate(draft.lines, start=1):
        product = products[_product_key(line.product_id)]
        if line.serial:
            unit = units[line.serial]
            if unit.product_id != product.id:
                raise InvalidSaleLine(
                    f"Serial {line.serial} does not belong to {product.code}.",
                    details={"line": index, "serial": line.serial},
                )
            if unit.status != SerializedUnit.Status.AVAILABLE:
                raise UnitNotAvailable(
                    f"Unit {line.serial} is {unit.status}.",
                    details={"line": index, "serial": line.serial, "status": unit.status},
                )
        elif product.is_serialized:
            raise InvalidSaleLine(
                f"Product {product.code} is sold by serial number.",
                details={"line": index, "product": product.code},
            )
        demand[str(product.id)] += line.quantity

    for product_id, quantity in demand.items():
        product = products[product_id]
        if quantity > product.stock_on_hand:
            raise InsufficientStock(
                f"Insufficient stock for {product.code}.",
                details={"product": product.code, "available": product.stock_on_hand, "requested": quantity},
            )


def _bump_customer(customer, amount, orders, using):
    if customer is None:
        return
    Customer.objects.using(using).filter(id=customer.id).update(
        total_purchases=F("total_purchases") + amount,
        order_count=F("order_count") + orders,
    )


def confirm_sale(draft, *, using=DEFAULT_DB_ALIAS):
    """Persist a draft and debit its stock in one transaction (DRAFT to CONFIRMED).

    Every referenced product and unit is locked and validated before anything
    is written; any failure rolls the whole sale back.
    """
    with transaction.atomic(using=using):
        customer = _lock_customer(draft.customer_id, using)
        products = _lock_products([line.product_id for line in draft.lines], using)
        units = _lock_units(draft.serials, using)
        _validate_stock(draft, products, units)

        sale = Sale.objects.using(using).create(
            order_number=draft.order_number or next_order_number(using=using),
            customer=customer,
            user_id=draft.user_id,
            sale_type=draft.sale_type,
            status=Sale.Status.CONFIRMED,
            payment_status=draft.payment_status,
            subtotal=draft.subtotal,
            discount=draft.discount,
            tax=draft.tax,
            total=draft.total,
            notes=draft.notes,
            sold_at=draft.sold_at,
        )

        for line in draft.lines:
            unit = units.get(line.serial)
            SaleLine.objects.using(using).create(
                sale=sale,
                product_id=line.product_id,
                unit=unit,
                serial=line.serial,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                subtotal=line.subtotal,
            )
            if unit is not None:
                sell_unit(
                    line.serial,
                    sale.id,
                    sale.customer_id,
                    line.subtotal,
                    draft.sold_at,
                    reference=sale.order_number,
                    using=using,
                )
            else:
                apply_delta(
                    line.product_id,
                    -line.quantity,
                    StockMovement.Type.EXIT,
                    reference=sale.order_number,
                    reason=f"Venta {sale.order_number}",
                    allow_negative=False,
                    using=using,
                )

        Payment.objects.using(using).bulk_create(
            [
                Payment(
                    sale=sale,
                    method=payment.method,
                    currency=payment.currency,
                    amount=payment.amount,
                    exchange_rate=payment.exchange_rate,
                    amount_base=payment.amount_base,
                    reference=payment.reference,
                    paid_at=draft.sold_at,
                )
                for payment in draft.payments
            ]
        )

        if draft.sale_type == Sale.Type.SALE:
            _bump_customer(customer, sale.total, 1, using)

    logger.info("sale_confirmed", extra={"order_number": sale.order_number})
    return sale


def create_sale(customer_id, user_id, lines, payments=(), **kwargs):
    using = kwargs.get("using", DEFAULT_DB_ALIAS)
    return confirm_sale(prepare_sale(customer_id, user_id, lines, payments, **kwargs), using=using)


def record_consigned_sale(customer_id, user_id, items, *, sold_at=None, notes="", using=DEFAULT_DB_ALIAS):
    """Record consigned units reported sold as one pending VENTA.

    The units left stock when they were consigned, so no ledger call is made
    here; only the unit state and the sale records change.
    """
    sold_at = sold_at or timezone.now()
    with transaction.atomic(using=using):
        customer = _lock_customer(customer_id, using)
        subtotal = to_money(sum((item.price for item in items), ZERO))
        sale = Sale.objects.using(using).create(
            order_number=next_order_number(using=using),
            customer=customer,
            user_id=user_id,
            sale_type=Sale.Type.SALE,
            status=Sale.Status.CONFIRMED,
            payment_status=Sale.PaymentStatus.PENDING,
            subtotal=subtotal,
            total=subtotal,
            from_consignment=True,
            notes=notes,
            sold_at=sold_at,
        )
        for item in items:
            SaleLine.objects.using(using).create(
                sale=sale,
                product_id=item.unit.product_id,
                unit=item.unit,
                serial=item.unit.serial,
                quantity=1,
                unit_price=to_money(item.price),
                subtotal=to_money(item.price),
            )
            sell_consigned_unit(item.unit, sale.id, sale.customer_id, item.price, sold_at, using=using)

        _bump_customer(customer, sale.total, 1, using)

    logger.info("consigned_sale_recorded", extra={"order_number": sale.order_number, "quantity": len(items)})
    return sale


def _lock_sale(sale_id, using):
    try:
        return Sale.objects.using(using).select_for_update().get(id=sale_id)
    except (Sale.DoesNotExist, ValidationError):
        raise SaleNotFound(details={"sale_id": str(sale_id)}) from None


def _in_customer_stats(sale):
    # A CONSIGNACION sale is counted for the customer only once it is paid.
    return sale.sale_type == Sale.Type.SALE or sale.payment_status == Sale.PaymentStatus.PAID


def _restore_stock(sale, reason, using):
    lines = list(sale.lines.using(using).order_by("product_id", "serial"))
    _lock_products([line.product_id for line in lines], using)
    for line in lines:
        if line.unit_id:
            revert_unit_sale(lock_unit(line.serial, using=using), using=using)
        apply_delta(
            line.product_id,
            line.quantity,
            StockMovement.Type.RETURN,
            reference=sale.order_number,
            reason=reason,
            using=using,
        )


def _sale_snapshot(sale, using):
    return {
        "order_number": sale.order_number,
        "status": sale.status,
        "payment_status": sale.payment_status,
        "total": sale.total,
        "customer_id": sale.customer_id,
        "lines": list(sale.lines.using(using).values("product_id", "serial", "quantity", "unit_price", "subtotal")),
        "payments": list(sale.payments.using(using).values("method", "currency", "amount", "amount_base")),
    }


def cancel_sale(sale_id, *, actor=None, request_id=None, reason="", using=DEFAULT_DB_ALIAS):
    """Move a confirmed sale to ANULADA and put its goods back in stock."""
    with transaction.atomic(using=using):
        sale = _lock_sale(sale_id, using)
        if sale.status != Sale.Status.CONFIRMED:
            raise SaleNotCancellable(details={"order_number": sale.order_number, "status": sale.status})
        if sale.from_consignment:
            raise SaleNotCancellable(
                "Sales reported by a consignee cannot be cancelled.",
                details={"order_number": sale.order_number},
            )

        before = _sale_snapshot(sale, using)
        _restore_stock(sale, reason or f"Venta anulada {sale.order_number}", using)
        if _in_customer_stats(sale):
            _bump_customer(sale.customer, -sale.total, -1, using)

        sale.status = Sale.Status.CANCELLED
        sale.cancelled_at = timezone.now()
        if reason:
            sale.notes = f"{sale.notes}\n{reason}".strip()
        sale.save(using=using, update_fields=["status", "cancelled_at", "notes", "updated_at"])
        create_audit_log(
            actor=actor,
            action="sale.cancel",
            entity="sale",
            entity_id=sale.id,
            before_snapshot=before,
            after_snapshot={"status": sale.status, "cancelled_at": sale.cancelled_at},
            request_id=request_id,
            using=using,
        )

    logger.info("sale_cancelled", extra={"order_number": sale.order_number})
    return sale


def void_sale(sale_id, *, actor=None, request_id=None, using=DEFAULT_DB_ALIAS):
    """Delete a sale as if it never happened, re-crediting any stock it still holds.

    Stock movements are append-only, so the original SALIDA rows stay and the
    compensating DEVOLUCION rows are added next to them.
    """
    with transaction.atomic(using=using):
        sale = _lock_sale(sale_id, using)
        if sale.from_consignment:
            raise SaleNotVoidable(
                "Sales reported by a consignee cannot be voided.",
                details={"order_number": sale.order_number},
            )

        before = _sale_snapshot(sale, using)
        if sale.status == Sale.Status.CONFIRMED:
            _restore_stock(sale, f"Venta eliminada {sale.order_number}", using)
            if _in_customer_stats(sale):
                _bump_customer(sale.customer, -sale.total, -1, using)

        sale_pk = sale.id
        order_number = sale.order_number
        sale.payments.using(using).all().delete()
        sale.lines.using(using).all().delete()
        sale.delete(using=using)
        create_audit_log(
            actor=actor,
            action="sale.void",
            entity="sale",
            entity_id=sale_pk,
            before_snapshot=before,
            request_id=request_id,
            using=using,
        )

    logger.info("sale_voided", extra={"order_number": order_number})


def record_payments(sale_id, payments, *, paid_at=None, actor=None, request_id=None, using=DEFAULT_DB_ALIAS):
    """Collect payments against the open balance of a confirmed sale.

    Payments are converted to the base currency at ``paid_at``. The sale moves
    to PARCIAL, or to PAGADO once the balance is covered within
    ``SALES_PAYMENT_TOLERANCE``; paying past the balance raises
    ``PaymentMismatch``. A CONSIGNACION sale joins the customer's purchase
    stats when it is fully paid.
    """
    if not payments:
        raise InvalidPaymentAmount("At least one payment is required.")
    paid_at = paid_at or timezone.now()
    draft_payments = [_prepare_payment(payment, paid_at, using) for payment in payments]

    with transaction.atomic(using=using):
        sale = _lock_sale(sale_id, using)
        if sale.status != Sale.Status.CONFIRMED or sale.payment_status == Sale.PaymentStatus.PAID:
            raise SaleNotPayable(
                details={
                    "order_number": sale.order_number,
                    "status": sale.status,
                    "payment_status": sale.payment_status,
                }
            )

        already_paid = to_money(sale.payments.using(using).aggregate(total=Sum("amount_base"))["total"])
        paid_total = to_money(already_paid + sum((payment.amount_base for payment in draft_payments), ZERO))
        if paid_total - sale.total > _payment_tolerance():
            raise PaymentMismatch(
                "Payments exceed the sale balance.",
                details={"total": str(sale.total), "already_paid": str(already_paid), "paid": str(paid_total)},
            )

        Payment.objects.using(using).bulk_create(
            [
                Payment(
                    sale=sale,
                    method=payment.method,
                    currency=payment.currency,
                    amount=payment.amount,
                    exchange_rate=payment.exchange_rate,
                    amount_base=payment.amount_base,
                    reference=payment.reference,
                    paid_at=paid_at,
                )
                for payment in draft_payments
            ]
        )

        status_before = sale.payment_status
        if sale.total - paid_total <= _payment_tolerance():
            sale.payment_status = Sale.PaymentStatus.PAID
        else:
            sale.payment_status = Sale.PaymentStatus.PARTIAL
        sale.save(using=using, update_fields=["payment_status", "updated_at"])

        if sale.sale_type == Sale.Type.CONSIGNMENT and sale.payment_status == Sale.PaymentStatus.PAID:
            _bump_customer(sale.customer, sale.total, 1, using)

        create_audit_log(
            actor=actor,
            action="sale.payment",
            entity="sale",
            entity_id=sale.id,
            before_snapshot={"payment_status": status_before, "paid": already_paid},
            after_snapshot={"payment_status": sale.payment_status, "paid": paid_total},
            request_id=request_id,
            using=using,
        )

    logger.info("sale_payment_recorded", extra={"order_number": sale.order_number, "quantity": len(draft_payments)})
    return sale
