"""Read-only currency conversion for payments.

Rates are written by an operator or the external rate service; settlement
only reads the newest one.
"""

from decimal import Decimal

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS
from django.utils import timezone

from common.exceptions import MissingExchangeRate
from common.utils import to_money
from sales.models import ExchangeRate


def base_currency():
    return getattr(settings, "SALES_BASE_CURRENCY", "USD")


def latest_rate(currency, *, at=None, using=DEFAULT_DB_ALIAS):
    if currency == base_currency():
        return Decimal("1")

    rates = ExchangeRate.objects.using(using).filter(currency=currency)
    if at is not None:
        rates = rates.filter(effective_at__lte=at)
    rate = rates.order_by("-effective_at", "-created_at").values_list("rate", flat=True).first()
    if rate is None:
        raise MissingExchangeRate(
            f"No exchange rate on file for {currency}.",
            details={"currency": currency},
        )
    return rate


def to_base(amount, currency, rate):
    if currency == base_currency():
        return to_money(amount)
    return to_money(Decimal(amount) / Decimal(rate))


def record_rate(currency, rate, *, source="", effective_at=None, using=DEFAULT_DB_ALIAS):
    return ExchangeRate.objects.using(using).create(
        currency=currency,
        rate=rate,
        source=source,
        effective_at=effective_at or timezone.now(),
    )
