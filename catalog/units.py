"""
Category/unit rules.

Each product category allows a fixed set of units (Yarn is sold by kg or
cones, Denim by m, yards or rolls, ...). The table lives in the
CATEGORY_UNITS setting so deployments and tests can replace it; callers may
also pass a table explicitly.
"""
from django.conf import settings

from core.exceptions import ValidationError


def unit_table(table=None):
    return table if table is not None else getattr(settings, 'CATEGORY_UNITS', {})


def allowed_units(category, table=None):
    return list(unit_table(table).get(category, []))


def is_unit_allowed(category, unit, table=None):
    return bool(unit) and unit in allowed_units(category, table)


def validate_unit(category, unit, table=None):
    """Return the cleaned unit or raise ValidationError listing the allowed set."""
    allowed = allowed_units(category, table)
    cleaned = str(unit).strip() if unit is not None else ''
    if not cleaned or cleaned not in allowed:
        raise ValidationError(
            f"Invalid unit for category {category}. Allowed units: {', '.join(allowed) or 'none'}",
            code='invalid_unit',
            details={'unit': [f"Allowed units for {category}: {allowed}"], 'allowed_units': allowed},
        )
    return cleaned
