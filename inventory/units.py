import logging
from collections import Counter
from dataclasses import dataclass

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, IntegrityError, transaction
from django.utils import timezone

from common.exceptions import (
    DuplicateSerial,
    InconsistentError,
    InvalidUnitTransition,
    ProductNotSerialized,
    UnitNotAvailable,
    UnitNotFound,
)
from common.utils import normalize_code, to_money
from inventory.models import SerializedUnit, StockMovement
from inventory.services import apply_delta, lock_product

logger = logging.getLogger(__name__)

Status = SerializedUnit.Status

ALLOWED_TRANSITIONS = {
    Status.AVAILABLE: {Status.SOLD, Status.DEFECTIVE, Status.CONSIGNED},
    Status.CONSIGNED: {Status.SOLD, Status.AVAILABLE},
    Status.SOLD: {Status.RETURNED},
    Status.RETURNED: {Status.AVAILABLE},
}

SALE_FIELDS = ["sale", "customer", "sale_price", "profit", "sold_at", "warranty_expires_at"]


@dataclass
class UnitWarranty:
    unit: SerializedUnit
    sold_by_us: bool
    in_warranty: bool
    warranty_days_left: int


def _transition(unit, target):
    if target not in ALLOWED_TRANSITIONS.get(unit.status, ()):
        raise InvalidUnitTransition(
            f"Unit {unit.serial} cannot go from {unit.status} to {target.value}.",
            details={"serial": unit.serial, "from": unit.status, "to": target.value},
        )
    unit.status = target


def _require_status(unit, status):
    if unit.status != status:
        raise UnitNotAvailable(
            f"Unit {unit.serial} is {unit.status}.",
            details={"serial": unit.serial, "status": unit.status},
        )


def _clear_sale(unit):
    for name in SALE_FIELDS:
        setattr(unit, name, None)


def _mark_sold(unit, sale_id, customer_id, price, sold_at):
    _transition(unit, Status.SOLD)
    sold_at = sold_at or timezone.now()
    unit.sale_id = sale_id
    unit.customer_id = customer_id
    unit.sale_price = to_money(price)
    unit.profit = to_money(unit.sale_price - unit.unit_cost)
    unit.sold_at = sold_at
    unit.warranty_expires_at = sold_at + relativedelta(months=unit.warranty_months)


def lock_unit(serial, *, using=DEFAULT_DB_ALIAS):
    serial = normalize_code(serial)
    try:
        return SerializedUnit.objects.using(using).select_for_update().select_related("product").get(serial=serial)
    except SerializedUnit.DoesNotExist:
        raise UnitNotFound(f"Serial {serial} not found.", details={"serial": serial}) from None


def _lock_product_then_unit(serial, using):
    """Lock a unit's product before the unit, the order sales and consignments use."""
    serial = normalize_code(serial)
    product_id = SerializedUnit.objects.using(using).filter(serial=serial).values_list("product_id", flat=True).first()
    if product_id is None:
        raise UnitNotFound(f"Serial {serial} not found.", details={"serial": serial})
    lock_product(product_id, using=using)
    return lock_unit(serial, using=using)


def register_units(
    product_id,
    serials,
    unit_cost,
    warranty_months=None,
    origin=SerializedUnit.Origin.DOMESTIC,
    *,
    batch="",
    notes="",
    received_at=None,
    using=DEFAULT_DB_ALIAS,
):
    """Register new serialized units as available stock.

    The whole batch is rejected when any serial repeats inside the batch or is
    already on file. On success the product is credited once with an ENTRADA
    movement for the batch size.
    """
    normalized = [normalize_code(serial) for serial in serials]
    if not normalized or not all(normalized):
        raise InconsistentError("Serial numbers must not be blank.", details={"serials": list(serials)})

    repeated = sorted(serial for serial, count in Counter(normalized).items() if count > 1)
    if repeated:
        raise DuplicateSerial("Serial numbers repeat inside the batch.", details={"serials": repeated})

    if warranty_months is None:
        warranty_months = getattr(settings, "INVENTORY_DEFAULT_WARRANTY_MONTHS", 6)
    received_at = received_at or timezone.now()

    with transaction.atomic(using=using):
        product = lock_product(product_id, using=using)
        if not product.is_serialized:
            raise ProductNotSerialized(details={"product": product.code})

        existing = sorted(
            SerializedUnit.objects.using(using).filter(serial__in=normalized).values_list("serial", flat=True)
        )
        if existing:
            raise DuplicateSerial(details={"serials": existing})

        units = [
            SerializedUnit(
                serial=serial,
                product=product,
                unit_cost=to_money(unit_cost),
                warranty_months=warranty_months,
                origin=origin,
                batch=batch,
                received_at=received_at,
                notes=notes,
            )
            for serial in normalized
        ]
        try:
            with transaction.atomic(using=using):
                SerializedUnit.objects.using(using).bulk_create(units)
        except IntegrityError:
            raise DuplicateSerial(details={"serials": normalized}) from None

        apply_delta(
            product.id,
            len(units),
            StockMovement.Type.ENTRY,
            reference=batch,
            reason=f"Registro de {len(units)} seriales",
            using=using,
        )

    logger.info("units_registered", extra={"product_code": product.code, "quantity": len(units)})
    return len(units)


def sell_unit(serial, sale_id, customer_id, price, sold_at=None, *, reference="", using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        unit = _lock_product_then_unit(serial, using)
        _require_status(unit, Status.AVAILABLE)
        _mark_sold(unit, sale_id, customer_id, price, sold_at)
        unit.save(using=using, update_fields=["status", *SALE_FIELDS, "updated_at"])
        apply_delta(
            unit.product_id,
            -1,
            StockMovement.Type.EXIT,
            reference=reference or str(sale_id),
            reason=f"Venta serial {unit.serial}",
            using=using,
        )

    logger.info("unit_sold", extra={"serial": unit.serial, "product_code": unit.product.code})
    return unit


def return_unit(serial, reason="", *, reference="", using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        unit = _lock_product_then_unit(serial, using)
        _transition(unit, Status.RETURNED)
        if reason:
            unit.notes = f"{unit.notes}\n{reason}".strip()
        unit.save(using=using, update_fields=["status", "notes", "updated_at"])
        apply_delta(
            unit.product_id,
            1,
            StockMovement.Type.RETURN,
            reference=reference or (unit.sale.order_number if unit.sale_id else ""),
            reason=reason or f"Devolucion serial {unit.serial}",
            using=using,
        )

    logger.info("unit_returned", extra={"serial": unit.serial, "product_code": unit.product.code})
    return unit


def restock_unit(serial, *, using=DEFAULT_DB_ALIAS):
    """Put a returned unit back on sale; it was already counted when returned."""
    with transaction.atomic(using=using):
        unit = lock_unit(serial, using=using)
        _transition(unit, Status.AVAILABLE)
        _clear_sale(unit)
        unit.save(using=using, update_fields=["status", *SALE_FIELDS, "updated_at"])
    return unit


def mark_defective(serial, reason="", *, using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        unit = _lock_product_then_unit(serial, using)
        _transition(unit, Status.DEFECTIVE)
        if reason:
            unit.notes = f"{unit.notes}\n{reason}".strip()
        unit.save(using=using, update_fields=["status", "notes", "updated_at"])
        apply_delta(
            unit.product_id,
            -1,
            StockMovement.Type.ADJUSTMENT,
            reference=unit.serial,
            reason=reason or "Unidad defectuosa",
            using=using,
        )
    return unit


def consign_unit(unit, *, using=DEFAULT_DB_ALIAS):
    """Hand a locked available unit to a consignee. The caller debits stock."""
    _require_status(unit, Status.AVAILABLE)
    _transition(unit, Status.CONSIGNED)
    unit.save(using=using, update_fields=["status", "updated_at"])
    return unit


def sell_consigned_unit(unit, sale_id, customer_id, price, sold_at=None, *, using=DEFAULT_DB_ALIAS):
    """Record the sale of a consigned unit; its stock left at hand-over."""
    _require_status(unit, Status.CONSIGNED)
    _mark_sold(unit, sale_id, customer_id, price, sold_at)
    unit.save(using=using, update_fields=["status", *SALE_FIELDS, "updated_at"])
    return unit


def release_consigned_unit(unit, *, using=DEFAULT_DB_ALIAS):
    """Take a consigned unit back into available stock. The caller credits stock."""
    _require_status(unit, Status.CONSIGNED)
    _transition(unit, Status.AVAILABLE)
    unit.save(using=using, update_fields=["status", "updated_at"])
    return unit


def revert_unit_sale(unit, *, using=DEFAULT_DB_ALIAS):
    """Undo ``sell_unit`` for a cancelled or voided sale. The caller credits stock."""
    if unit.status != Status.SOLD:
        raise InvalidUnitTransition(
            f"Unit {unit.serial} is {unit.status}, not sold.",
            details={"serial": unit.serial, "from": unit.status, "to": Status.AVAILABLE.value},
        )
    unit.status = Status.AVAILABLE
    _clear_sale(unit)
    unit.save(using=using, update_fields=["status", *SALE_FIELDS, "updated_at"])
    return unit


def lookup_unit(serial, *, now=None, using=DEFAULT_DB_ALIAS):
    serial = normalize_code(serial)
    unit = SerializedUnit.objects.using(using).select_related("product", "sale", "customer").filter(serial=serial).first()
    if unit is None:
        raise UnitNotFound(f"Serial {serial} not found.", details={"serial": serial})

    now = now or timezone.now()
    sold_by_us = unit.status in (Status.SOLD, Status.RETURNED) and unit.sold_at is not None
    in_warranty = bool(sold_by_us and unit.warranty_expires_at and unit.warranty_expires_at >= now)
    days_left = (unit.warranty_expires_at - now).days if in_warranty else 0
    return UnitWarranty(unit=unit, sold_by_us=sold_by_us, in_warranty=in_warranty, warranty_days_left=days_left)
