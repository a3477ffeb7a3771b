import re
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import IntegerField, Max
from django.db.models.functions import Cast, Substr

MONEY_QUANT = Decimal("0.01")


def to_money(value):
    return Decimal(value or 0).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def normalize_code(value):
    """Serials and product codes are stored trimmed and upper-cased."""
    return str(value or "").strip().upper()


def next_document_number(model, field, prefix, *, using="default", width=4):
    """Return the next ``<prefix><serial>`` number for ``model.field``.

    The serial restarts for every distinct prefix, so a prefix carrying the
    date (``V-20250101-``) yields a daily sequence. Serials are compared as
    integers, so the sequence keeps counting once it outgrows ``width``.
    """
    last = (
        model.objects.using(using)
        .filter(**{f"{field}__regex": rf"^{re.escape(prefix)}[0-9]+$"})
        .aggregate(last=Max(Cast(Substr(field, len(prefix) + 1), output_field=IntegerField())))["last"]
    )
    return f"{prefix}{(last or 0) + 1:0{width}d}"
