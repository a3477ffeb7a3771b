"""Stock status classification.

Everything here is pure: no queries, no writes. The ledger calls these after
every stock mutation to decide the new status and whether an alert is due.
"""

from common.exceptions import InvalidThresholds
from inventory.models import Product, StockAlert

StockStatus = Product.StockStatus

SEVERITY = {
    StockStatus.OK: 0,
    StockStatus.WARNING: 1,
    StockStatus.ALERT: 2,
    StockStatus.OUT_OF_STOCK: 3,
}

ALERT_TYPE_BY_STATUS = {
    StockStatus.WARNING: StockAlert.Type.LOW_STOCK,
    StockStatus.ALERT: StockAlert.Type.MINIMUM_STOCK,
    StockStatus.OUT_OF_STOCK: StockAlert.Type.OUT_OF_STOCK,
}

ALERT_MESSAGES = {
    StockAlert.Type.LOW_STOCK: "Stock bajo para {code}: {stock} unidades",
    StockAlert.Type.MINIMUM_STOCK: "Stock en minimo para {code}: {stock} unidades",
    StockAlert.Type.OUT_OF_STOCK: "Producto agotado: {code}",
    StockAlert.Type.OVERSTOCK: "Sobrestock para {code}: {stock} unidades (maximo {threshold})",
}


def classify(stock, minimum, warning):
    """Return the stock status for ``stock`` given the product thresholds.

    Rules are checked in order, first match wins:

    - ``stock <= 0`` is AGOTADO
    - ``stock <= minimum`` is ALERTA
    - ``stock <= warning`` is ALERTA_W
    - anything else is OK

    ``minimum <= warning`` is validated when thresholds are written, not here.
    """
    if stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if stock <= minimum:
        return StockStatus.ALERT
    if stock <= warning:
        return StockStatus.WARNING
    return StockStatus.OK


def severity(status):
    return SEVERITY[StockStatus(status)]


def is_worse(before, after):
    return severity(after) > severity(before)


def alert_type_for(status):
    return ALERT_TYPE_BY_STATUS.get(StockStatus(status))


def threshold_for(status, minimum, warning):
    status = StockStatus(status)
    if status == StockStatus.WARNING:
        return warning
    if status == StockStatus.ALERT:
        return minimum
    return 0


def crosses_overstock(before, after, maximum):
    if maximum is None:
        return False
    return before <= maximum < after


def build_message(alert_type, code, stock, threshold):
    return ALERT_MESSAGES[alert_type].format(code=code, stock=stock, threshold=threshold)


def validate_thresholds(minimum, warning, maximum=None):
    errors = {}
    if minimum < 0:
        errors["minimum_stock"] = "Must be zero or greater."
    if warning < minimum:
        errors["warning_stock"] = "Must be greater than or equal to minimum_stock."
    if maximum is not None and maximum < warning:
        errors["maximum_stock"] = "Must be greater than or equal to warning_stock."
    if errors:
        raise InvalidThresholds(details=errors)
