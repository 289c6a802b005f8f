"""
Human-readable reference numbers (ENQ25100001, QUO25100001).

Numbers are {prefix}{YY}{MM}{NNNN}: the sequence restarts every month and is
handed out by an atomic counter row per prefix and period. The first time a
period is used the counter is seeded from the highest number already stored,
so records created before the counter existed are never duplicated.
"""
import logging
import re

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import ConflictError
from .models import ReferenceCounter

logger = logging.getLogger(__name__)

SEQUENCE_DIGITS = 4
MAX_SEQUENCE = 10 ** SEQUENCE_DIGITS - 1
REFERENCE_PATTERN = re.compile(r'^(?P<prefix>[A-Z]+)(?P<period>\d{4})(?P<sequence>\d{4})$')


def period_key(prefix, now):
    return f"{prefix}{now:%y%m}"


def last_sequence(model, field, key):
    """Highest sequence already stored for ``key`` in ``model.field`` (0 if none)."""
    latest = (
        model.objects.filter(**{f'{field}__startswith': key})
        .order_by(f'-{field}')
        .values_list(field, flat=True)
        .first()
    )
    if not latest:
        return 0
    try:
        return int(latest[-SEQUENCE_DIGITS:])
    except ValueError:
        logger.warning(f"Ignoring malformed reference number {latest!r} while seeding {key}")
        return 0


class IdentitySequencer:
    """Issues the next reference number for a prefix and month."""

    def __init__(self, clock=None):
        self.clock = clock or timezone.now

    def next(self, prefix, now=None, model=None, field=None):
        now = now or self.clock()
        key = period_key(prefix, timezone.localtime(now) if timezone.is_aware(now) else now)

        with transaction.atomic():
            counter = ReferenceCounter.objects.select_for_update().filter(key=key).first()
            if counter is None:
                seed = last_sequence(model, field, key) if model is not None else 0
                try:
                    with transaction.atomic():
                        counter = ReferenceCounter.objects.create(key=key, value=seed)
                except IntegrityError:
                    # Another worker created the period row first
                    counter = ReferenceCounter.objects.select_for_update().get(key=key)

            ReferenceCounter.objects.filter(pk=counter.pk).update(value=F('value') + 1)
            counter.refresh_from_db(fields=['value'])

        if counter.value > MAX_SEQUENCE:
            raise ConflictError(f"Reference sequence for {key} is exhausted.", code='sequence_exhausted')

        return f"{key}{counter.value:0{SEQUENCE_DIGITS}d}"


def create_with_reference(sequencer, prefix, model, field, build, now=None):
    """
    Assign a reference number and persist the record built by ``build(reference)``.

    ``build`` must save the record (and anything hanging off it) and return it.
    A unique-constraint violation is retried with a fresh number; after
    REFERENCE_RETRY_ATTEMPTS failures a ConflictError is raised.
    """
    attempts = getattr(settings, 'REFERENCE_RETRY_ATTEMPTS', 3)
    for attempt in range(1, attempts + 1):
        reference = sequencer.next(prefix, now=now, model=model, field=field)
        try:
            with transaction.atomic():
                return build(reference)
        except IntegrityError as e:
            logger.warning(
                f"Duplicate reference {reference} on attempt {attempt}/{attempts}: {e}"
            )
    raise ConflictError(
        f"Could not allocate a unique {prefix} reference number. Please retry.",
        code='duplicate_reference',
    )
