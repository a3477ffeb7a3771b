import logging
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone

from common.exceptions import (
    ConsigneeInactive,
    ConsigneeNotFound,
    ConsignmentLineNotFound,
    ConsignmentMismatch,
    ConsignmentNotFound,
    InconsistentError,
    InvalidPaymentAmount,
    InvalidSaleLine,
    LineNotPending,
    MixedConsignmentLines,
    UnitNotAvailable,
    UnitNotFound,
)
from common.utils import next_document_number, normalize_code, to_money
from consignment.models import Consignee, Consignment, ConsignmentLine, ConsignmentPayment
from inventory.models import SerializedUnit, StockMovement
from inventory.services import apply_delta, lock_product
from inventory.units import consign_unit, lock_unit, release_consigned_unit
from sales.models import Payment
from sales.services import ConsignedItem, record_consigned_sale

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class ConsignmentLineInput:
    serial: str
    price: Decimal
    product_id: object = None


def next_consignment_number(*, using=DEFAULT_DB_ALIAS):
    prefix = timezone.localdate().strftime("CON-%Y%m%d-")
    return next_document_number(Consignment, "number", prefix, using=using, width=3)


def _lock_consignee(consignee_id, using):
    try:
        return Consignee.objects.using(using).select_for_update().get(id=consignee_id)
    except (Consignee.DoesNotExist, ValidationError):
        raise ConsigneeNotFound(details={"consignee_id": str(consignee_id)}) from None


def _lock_consignment(consignment_id, using):
    try:
        return Consignment.objects.using(using).select_for_update().get(id=consignment_id)
    except (Consignment.DoesNotExist, ValidationError):
        raise ConsignmentNotFound(details={"consignment_id": str(consignment_id)}) from None


def _lock_pending_lines(line_ids, using):
    """Lock the requested lines and check they are all pending in one consignment."""
    ids = sorted({str(line_id) for line_id in line_ids})
    if not ids:
        raise InconsistentError("At least one consignment line is required.")
    try:
        lines = list(
            ConsignmentLine.objects.using(using)
            .select_for_update()
            .filter(id__in=ids)
            .select_related("unit")
            .order_by("id")
        )
    except ValidationError:
        raise ConsignmentLineNotFound(details={"line_ids": ids}) from None

    found = {str(line.id) for line in lines}
    missing = [line_id for line_id in ids if line_id not in found]
    if missing:
        raise ConsignmentLineNotFound(details={"line_ids": missing})

    consignment_ids = {line.consignment_id for line in lines}
    if len(consignment_ids) > 1:
        raise MixedConsignmentLines(details={"consignment_ids": sorted(str(pk) for pk in consignment_ids)})

    settled = [str(line.id) for line in lines if line.status != ConsignmentLine.Status.DELIVERED]
    if settled:
        raise LineNotPending(details={"line_ids": settled})

    return lines, _lock_consignment(consignment_ids.pop(), using)


def _lock_products_of(product_ids, using):
    for product_id in sorted({str(product_id) for product_id in product_ids}):
        lock_product(product_id, using=using)


def refresh_consignment_status(consignment, *, using=DEFAULT_DB_ALIAS):
    statuses = list(consignment.lines.using(using).values_list("status", flat=True))
    line_status = ConsignmentLine.Status
    if statuses and all(status == line_status.RETURNED for status in statuses):
        status = Consignment.Status.CANCELLED
    elif statuses and line_status.DELIVERED not in statuses and consignment.pending_value <= 0:
        status = Consignment.Status.SETTLED
    elif line_status.SOLD in statuses or consignment.paid_value > 0:
        status = Consignment.Status.IN_PROGRESS
    else:
        status = Consignment.Status.PENDING

    if status != consignment.status:
        consignment.status = status
        consignment.save(using=using, update_fields=["status", "updated_at"])
    return consignment


def create_consignment(consignee_id, lines, *, delivered_at=None, due_date=None, notes="", using=DEFAULT_DB_ALIAS):
    """Hand serialized units to a consignee.

    Each unit goes from DISPONIBLE to CONSIGNADO and stock is debited once per
    product with a SALIDA movement referencing the consignment number. Nothing
    is written unless every unit is available.
    """
    if not lines:
        raise InconsistentError("A consignment needs at least one line.")

    requested = [(normalize_code(line.serial), to_money(line.price), line.product_id) for line in lines]
    repeated = sorted(serial for serial, count in Counter(serial for serial, _, _ in requested).items() if count > 1)
    if repeated:
        raise InvalidSaleLine("A serial appears on more than one line.", details={"serials": repeated})
    negative = [serial for serial, price, _ in requested if price < 0]
    if negative:
        raise InvalidSaleLine("Consignment prices must not be negative.", details={"serials": negative})

    serials = sorted(serial for serial, _, _ in requested)
    with transaction.atomic(using=using):
        consignee = _lock_consignee(consignee_id, using)
        if not consignee.is_active:
            raise ConsigneeInactive(details={"consignee": consignee.name})

        _lock_products_of(
            SerializedUnit.objects.using(using).filter(serial__in=serials).values_list("product_id", flat=True),
            using,
        )
        units = {
            unit.serial: unit
            for unit in SerializedUnit.objects.using(using).select_for_update().filter(serial__in=serials).order_by("serial")
        }
        missing = [serial for serial in serials if serial not in units]
        if missing:
            raise UnitNotFound(f"Serial {missing[0]} not found.", details={"serials": missing})

        for serial, _, product_id in requested:
            unit = units[serial]
            if unit.status != SerializedUnit.Status.AVAILABLE:
                raise UnitNotAvailable(
                    f"Unit {serial} is {unit.status}.",
                    details={"serial": serial, "status": unit.status},
                )
            if product_id is not None and str(unit.product_id) != str(product_id):
                raise InvalidSaleLine(f"Serial {serial} does not belong to the stated product.", details={"serial": serial})

        total = to_money(sum((price for _, price, _ in requested), ZERO))
        consignment = Consignment.objects.using(using).create(
            number=next_consignment_number(using=using),
            consignee=consignee,
            delivered_at=delivered_at or timezone.now(),
            due_date=due_date,
            total_value=total,
            pending_value=total,
            notes=notes,
        )

        per_product = Counter()
        for serial, price, _ in requested:
            unit = units[serial]
            ConsignmentLine.objects.using(using).create(
                consignment=consignment,
                product_id=unit.product_id,
                unit=unit,
                price=price,
            )
            consign_unit(unit, using=using)
            per_product[unit.product_id] += 1

        for product_id, count in per_product.items():
            apply_delta(
                product_id,
                -count,
                StockMovement.Type.EXIT,
                reference=consignment.number,
                reason=f"Consignacion a {consignee.name}",
                allow_negative=False,
                using=using,
            )

        consignee.total_consigned += total
        consignee.balance_due += total
        consignee.save(using=using, update_fields=["total_consigned", "balance_due", "updated_at"])

    logger.info("consignment_created", extra={"consignment_number": consignment.number, "quantity": len(requested)})
    return consignment


def report_sold(line_ids, sold_at=None, *, user_id=None, using=DEFAULT_DB_ALIAS):
    """Turn pending consignment lines into one sale.

    The units already left stock at hand-over, so stock is not debited again;
    the sale is recorded as pending and is collected with ``record_payments``.
    """
    sold_at = sold_at or timezone.now()
    with transaction.atomic(using=using):
        lines, consignment = _lock_pending_lines(line_ids, using)
        consignee = consignment.consignee
        items = [ConsignedItem(unit=lock_unit(line.unit.serial, using=using), price=line.price) for line in lines]

        sale = record_consigned_sale(
            consignee.customer_id,
            user_id,
            items,
            sold_at=sold_at,
            notes=f"Consignacion {consignment.number}",
            using=using,
        )

        for line in lines:
            line.status = ConsignmentLine.Status.SOLD
            line.sold_at = sold_at
            line.sale = sale
            line.save(using=using, update_fields=["status", "sold_at", "sale"])
        refresh_consignment_status(consignment, using=using)

    logger.info(
        "consignment_lines_sold",
        extra={"consignment_number": consignment.number, "order_number": sale.order_number, "quantity": len(lines)},
    )
    return sale


def report_returned(line_ids, returned_at=None, *, using=DEFAULT_DB_ALIAS):
    """Take pending consignment lines back into available stock."""
    returned_at = returned_at or timezone.now()
    with transaction.atomic(using=using):
        lines, consignment = _lock_pending_lines(line_ids, using)
        consignee = _lock_consignee(consignment.consignee_id, using)
        _lock_products_of([line.product_id for line in lines], using)

        per_product = Counter()
        returned_value = ZERO
        for line in lines:
            release_consigned_unit(lock_unit(line.unit.serial, using=using), using=using)
            line.status = ConsignmentLine.Status.RETURNED
            line.returned_at = returned_at
            line.save(using=using, update_fields=["status", "returned_at"])
            per_product[line.product_id] += 1
            returned_value += line.price

        for product_id, count in per_product.items():
            apply_delta(
                product_id,
                count,
                StockMovement.Type.RETURN,
                reference=consignment.number,
                reason=f"Devolucion de consignacion de {consignee.name}",
                using=using,
            )

        consignment.total_value -= returned_value
        consignment.pending_value -= returned_value
        consignment.save(using=using, update_fields=["total_value", "pending_value", "updated_at"])
        consignee.total_consigned -= returned_value
        consignee.balance_due -= returned_value
        consignee.save(using=using, update_fields=["total_consigned", "balance_due", "updated_at"])
        refresh_consignment_status(consignment, using=using)

    logger.info("consignment_lines_returned", extra={"consignment_number": consignment.number, "quantity": len(lines)})
    return consignment


def register_payment(
    consignee_id,
    amount,
    method,
    consignment_id=None,
    *,
    reference="",
    paid_at=None,
    notes="",
    using=DEFAULT_DB_ALIAS,
):
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidPaymentAmount(details={"amount": str(amount)})
    try:
        method = Payment.Method(method)
    except ValueError:
        raise InconsistentError("Unknown payment method.", details={"method": str(method)}) from None

    with transaction.atomic(using=using):
        consignee = _lock_consignee(consignee_id, using)
        consignment = None
        if consignment_id is not None:
            consignment = _lock_consignment(consignment_id, using)
            if consignment.consignee_id != consignee.id:
                raise ConsignmentMismatch(details={"consignment": consignment.number, "consignee": consignee.name})

        payment = ConsignmentPayment.objects.using(using).create(
            consignee=consignee,
            consignment=consignment,
            amount=amount,
            method=method,
            reference=reference,
            notes=notes,
            paid_at=paid_at or timezone.now(),
        )

        consignee.total_paid += amount
        consignee.balance_due -= amount
        consignee.save(using=using, update_fields=["total_paid", "balance_due", "updated_at"])
        if consignment is not None:
            consignment.paid_value += amount
            consignment.pending_value -= amount
            consignment.save(using=using, update_fields=["paid_value", "pending_value", "updated_at"])
            refresh_consignment_status(consignment, using=using)

    logger.info(
        "consignment_payment_registered",
        extra={"consignment_number": consignment.number if consignment else None},
    )
    return payment
