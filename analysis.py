from decimal import ROUND_HALF_UP, Decimal


def _round2(x) -> float:
    # Half away from zero on the decimal text: 70.125 -> 70.13, -70.125 -> -70.13.
    return float(Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _summarize_vitals(rows, vital_type: str, period_days: int):
    """Summary of vitals already ordered by measured_at ascending, or None if empty.

    ``current`` is the latest reading by measurement time and ``unit`` comes
    from the earliest one; units of the other rows are not checked.
    """
    if not rows:
        return None
    values = [float(r["value"]) for r in rows]
    return {
        "vital_type": vital_type,
        "count": len(values),
        "current": values[-1],
        "average": _round2(sum(values) / len(values)),
        "min": _round2(min(values)),
        "max": _round2(max(values)),
        "unit": rows[0]["unit"],
        "period_days": period_days,
    }
