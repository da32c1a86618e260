# dormitory/services/numbers.py
from django.utils import timezone


def unique_number(model, field: str, base: str) -> str:
    """``base`` plus a timestamp, suffixed until no row of ``model`` uses it."""
    candidate = f"{base}-{timezone.now():%Y%m%d%H%M%S%f}"
    number, n = candidate, 1
    while model.objects.filter(**{field: number}).exists():
        n += 1
        number = f"{candidate}-{n}"
    return number
