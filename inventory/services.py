import logging
from dataclasses import dataclass, field

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DEFAULT_DB_ALIAS, transaction
from django.db.models import Count, DecimalField, ExpressionWrapper, F, Sum
from django.utils import timezone

from common.audit import create_audit_log
from common.exceptions import (
    AlertAlreadyResolved,
    AlertNotFound,
    InsufficientStock,
    InvalidMovement,
    ProductNotFound,
    SerializedStockChange,
)
from common.utils import to_money
from inventory.alerts import (
    alert_type_for,
    build_message,
    classify,
    crosses_overstock,
    is_worse,
    threshold_for,
    validate_thresholds,
)
from inventory.models import Product, SerializedUnit, StockAlert, StockMovement

logger = logging.getLogger(__name__)

# +1 must be positive, -1 must be negative, 0 accepts either sign.
MOVEMENT_SIGNS = {
    StockMovement.Type.ENTRY: 1,
    StockMovement.Type.RETURN: 1,
    StockMovement.Type.EXIT: -1,
    StockMovement.Type.ADJUSTMENT: 0,
}

COUNTED_UNIT_STATUSES = (SerializedUnit.Status.AVAILABLE, SerializedUnit.Status.RETURNED)


@dataclass
class StockChange:
    product: Product
    stock_before: int
    stock_after: int
    status_before: str
    status_after: str
    movement: StockMovement
    alerts: list = field(default_factory=list)


def _movement_type(value):
    try:
        return StockMovement.Type(value)
    except ValueError:
        raise InvalidMovement(
            "Unknown movement type.",
            details={"movement_type": str(value)},
        ) from None


def _check_sign(quantity, movement_type):
    if quantity == 0:
        raise InvalidMovement("Stock movement quantity must not be zero.", details={"quantity": 0})
    expected = MOVEMENT_SIGNS[movement_type]
    if expected and (quantity > 0) != (expected > 0):
        raise InvalidMovement(
            details={"movement_type": movement_type.value, "quantity": quantity},
        )


def lock_product(product_id, *, using=DEFAULT_DB_ALIAS):
    """Fetch an active product holding its row lock; callers must be inside a transaction."""
    try:
        return Product.objects.using(using).select_for_update().get(id=product_id, is_active=True)
    except (Product.DoesNotExist, ValidationError):
        raise ProductNotFound(details={"product_id": str(product_id)}) from None


def _create_alert(product, alert_type, stock, threshold, using):
    return StockAlert.objects.using(using).create(
        product=product,
        alert_type=alert_type,
        stock_at_creation=stock,
        threshold_at_creation=threshold,
        message=build_message(alert_type, product.code, stock, threshold),
    )


def _raise_alerts(product, stock_before, stock_after, status_before, status_after, using):
    alerts = []
    if is_worse(status_before, status_after):
        alert_type = alert_type_for(status_after)
        threshold = threshold_for(status_after, product.minimum_stock, product.warning_stock)
        alerts.append(_create_alert(product, alert_type, stock_after, threshold, using))
    if crosses_overstock(stock_before, stock_after, product.maximum_stock):
        alerts.append(_create_alert(product, StockAlert.Type.OVERSTOCK, stock_after, product.maximum_stock, using))

    for alert in alerts:
        logger.warning(
            "stock_alert_created",
            extra={"product_code": product.code, "stock_after": stock_after, "movement_type": alert.alert_type},
        )
    return alerts


def apply_delta(
    product_id,
    quantity,
    movement_type,
    reference="",
    reason="",
    *,
    allow_negative=None,
    using=DEFAULT_DB_ALIAS,
):
    """Apply a signed stock change to one product and record it.

    Locks the product row, writes the new count and status, appends exactly one
    StockMovement and, when the status got strictly worse (or the overstock
    threshold was crossed), a StockAlert. Runs inside the caller's transaction
    when there is one, so a failure later in a composite operation undoes it.

    Negative results are allowed unless ``allow_negative`` is False; ``None``
    defers to ``settings.INVENTORY_ALLOW_NEGATIVE_STOCK``.
    """
    movement_type = _movement_type(movement_type)
    quantity = int(quantity)
    _check_sign(quantity, movement_type)
    if allow_negative is None:
        allow_negative = getattr(settings, "INVENTORY_ALLOW_NEGATIVE_STOCK", True)

    with transaction.atomic(using=using):
        product = lock_product(product_id, using=using)
        stock_before = product.stock_on_hand
        stock_after = stock_before + quantity
        if stock_after < 0 and not allow_negative:
            raise InsufficientStock(
                f"Insufficient stock for {product.code}.",
                details={"product": product.code, "available": stock_before, "requested": -quantity},
            )

        status_before = product.stock_status
        product.stock_on_hand = stock_after
        product.save(using=using, update_fields=["stock_on_hand", "updated_at"])

        movement = StockMovement.objects.using(using).create(
            product=product,
            movement_type=movement_type,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_after,
            reference=reference or "",
            reason=reason or "",
        )
        alerts = _raise_alerts(product, stock_before, stock_after, status_before, product.stock_status, using)

    logger.info(
        "stock_delta_applied",
        extra={
            "product_code": product.code,
            "movement_type": movement_type.value,
            "quantity": quantity,
            "stock_before": stock_before,
            "stock_after": stock_after,
        },
    )
    return StockChange(
        product=product,
        stock_before=stock_before,
        stock_after=stock_after,
        status_before=status_before,
        status_after=product.stock_status,
        movement=movement,
        alerts=alerts,
    )


def adjust_stock(product_id, quantity, movement_type, reference="", reason="", *, using=DEFAULT_DB_ALIAS):
    """Manual correction for a product counted in aggregate.

    Serialized products are counted by their units, so their stock only moves
    through the unit registry.
    """
    with transaction.atomic(using=using):
        product = lock_product(product_id, using=using)
        if product.is_serialized:
            raise SerializedStockChange(details={"product": product.code})
        return apply_delta(product.id, quantity, movement_type, reference, reason, using=using)


def set_thresholds(product_id, minimum, warning, maximum=None, *, actor=None, request_id=None, using=DEFAULT_DB_ALIAS):
    validate_thresholds(minimum, warning, maximum)

    with transaction.atomic(using=using):
        product = lock_product(product_id, using=using)
        before = {
            "minimum_stock": product.minimum_stock,
            "warning_stock": product.warning_stock,
            "maximum_stock": product.maximum_stock,
            "stock_status": product.stock_status,
        }
        status_before = product.stock_status
        product.minimum_stock = minimum
        product.warning_stock = warning
        product.maximum_stock = maximum
        product.save(using=using, update_fields=["minimum_stock", "warning_stock", "maximum_stock", "updated_at"])

        if is_worse(status_before, product.stock_status):
            alert_type = alert_type_for(product.stock_status)
            threshold = threshold_for(product.stock_status, minimum, warning)
            _create_alert(product, alert_type, product.stock_on_hand, threshold, using)

        create_audit_log(
            actor=actor,
            action="product.thresholds",
            entity="product",
            entity_id=product.id,
            before_snapshot=before,
            after_snapshot={
                "minimum_stock": minimum,
                "warning_stock": warning,
                "maximum_stock": maximum,
                "stock_status": product.stock_status,
            },
            request_id=request_id,
            using=using,
        )
    return product


def resolve_alert(alert_id, *, actor=None, request_id=None, using=DEFAULT_DB_ALIAS):
    with transaction.atomic(using=using):
        try:
            alert = StockAlert.objects.using(using).select_for_update().select_related("product").get(id=alert_id)
        except (StockAlert.DoesNotExist, ValidationError):
            raise AlertNotFound(details={"alert_id": str(alert_id)}) from None
        if alert.is_resolved:
            raise AlertAlreadyResolved(details={"alert_id": str(alert.id)})

        alert.is_resolved = True
        alert.resolved_at = timezone.now()
        alert.save(using=using, update_fields=["is_resolved", "resolved_at"])
        create_audit_log(
            actor=actor,
            action="alert.resolve",
            entity="stock_alert",
            entity_id=alert.id,
            before_snapshot={"is_resolved": False},
            after_snapshot={"is_resolved": True, "resolved_at": alert.resolved_at},
            request_id=request_id,
            using=using,
        )
    return alert


def open_alerts(*, using=DEFAULT_DB_ALIAS):
    return StockAlert.objects.using(using).filter(is_resolved=False).select_related("product").order_by("-created_at")


def inventory_summary(*, using=DEFAULT_DB_ALIAS):
    products = Product.objects.using(using).filter(is_active=True)
    by_status = {status: 0 for status in Product.StockStatus.values}
    for row in products.values("stock_status").annotate(total=Count("id")):
        by_status[row["stock_status"]] = row["total"]

    value = products.filter(stock_on_hand__gt=0).aggregate(
        total=Sum(
            ExpressionWrapper(
                F("stock_on_hand") * F("sale_price"),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            )
        )
    )["total"]

    return {
        "generated_at": timezone.now(),
        "product_count": sum(by_status.values()),
        "by_status": by_status,
        "open_alert_count": open_alerts(using=using).count(),
        "inventory_value": to_money(value),
    }


def verify_product_ledger(product, *, using=DEFAULT_DB_ALIAS):
    """Return a list of human-readable inconsistencies for ``product`` (empty when consistent)."""
    issues = []
    previous = None
    for movement in StockMovement.objects.using(using).filter(product=product).order_by("id").iterator():
        if movement.stock_after != movement.stock_before + movement.quantity:
            issues.append(
                f"movement {movement.id}: {movement.stock_before} + {movement.quantity} != {movement.stock_after}"
            )
        if previous is not None and movement.stock_before != previous.stock_after:
            issues.append(
                f"movement {movement.id}: starts at {movement.stock_before}, previous ended at {previous.stock_after}"
            )
        previous = movement

    if previous is not None and previous.stock_after != product.stock_on_hand:
        issues.append(f"last movement ends at {previous.stock_after}, product holds {product.stock_on_hand}")

    expected_status = classify(product.stock_on_hand, product.minimum_stock, product.warning_stock)
    if product.stock_status != expected_status:
        issues.append(f"status {product.stock_status} should be {expected_status.value}")

    if product.is_serialized:
        counted = SerializedUnit.objects.using(using).filter(product=product, status__in=COUNTED_UNIT_STATUSES).count()
        if counted != product.stock_on_hand:
            issues.append(f"{counted} units on hand, product holds {product.stock_on_hand}")

    return issues
