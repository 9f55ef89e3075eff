"""
Nutrition rollup over an owner's inventory.
"""

DAILY_TARGETS = {
    'protein': 60.0,   # grams
    'carbs': 300.0,    # grams
    'fats': 60.0,      # grams
}

_NUTRIENTS = ('protein', 'carbs', 'fats', 'calories')


def _value(item, key):
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def summarize_nutrition(items) -> dict:
    """
    Totals are nutrient x quantity summed over all items (quantity defaults to 1).
    Percentages are relative to DAILY_TARGETS and never exceed 100.
    """
    totals = {key: 0.0 for key in _NUTRIENTS}

    for item in items:
        quantity = _number(_value(item, 'quantity')) or 1
        for key in _NUTRIENTS:
            totals[key] += _number(_value(item, key)) * quantity

    percentages = {
        key: min(100, round(totals[key] / target * 100)) if target else 0
        for key, target in DAILY_TARGETS.items()
    }

    return {
        'totals': {key: round(value, 1) for key, value in totals.items()},
        'targets': dict(DAILY_TARGETS),
        'percentages': percentages,
        'itemCount': len(items),
    }
