# quotes/services.py
"""
Quotation Lifecycle

draft → sent → accepted | declined, with sent → expired applied lazily: a sent
quotation past its valid_until is coerced to expired whenever it is loaded or
saved here, and the coerced status is written back.

Every transition is committed first and announced afterwards through the
signals in quotes/events.py. The enquiry side reacts to those signals; its
failures are logged by the publisher and never undo the quotation write.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from catalog.gateway import CatalogGateway
from catalog.units import validate_unit
from core.auth import AuthContext
from core.exceptions import (
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
    from_django_validation,
)
from core.sequencer import IdentitySequencer, create_with_reference
from enquiries.models import Enquiry

from . import events
from .models import Quotation, QuotationItem, QuotationRevision, QuotationNote
from .pricing import PricingCalculator

logger = logging.getLogger(__name__)

QUOTATION_PREFIX = 'QUO'
IDENTITY_FIELDS = frozenset(['id', 'quotation_no', 'enquiry', 'enquiry_id', 'created_by', 'created_at'])
UPDATABLE_FIELDS = frozenset([
    'valid_until', 'terms', 'status', 'currency', 'tax_rate', 'shipping_cost',
    'shipping_method', 'payment_terms', 'custom_payment_terms', 'follow_up_date',
    'pdf_link', 'decline_reason',
])
ANSWERABLE_STATUSES = ('draft', 'sent')


def _user(actor):
    if isinstance(actor, AuthContext):
        return actor.user
    return actor


def _decimal_field(value, label, default=None):
    if value in (None, ''):
        if default is None:
            raise ValidationError(f"{label} is required.")
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number.")


class QuotationLifecycle:
    """Creates, revises and moves quotations through their states."""

    def __init__(self, catalog=None, sequencer=None, clock=None, publish=None, pricing=None):
        self.clock = clock or timezone.now
        self.catalog = catalog or CatalogGateway()
        self.sequencer = sequencer or IdentitySequencer(clock=self.clock)
        self.publish = publish or events.publish
        self.pricing = pricing or PricingCalculator()

    # =====================================
    # LOOKUPS
    # =====================================

    def get(self, quotation_id):
        try:
            quotation = Quotation.objects.select_related('enquiry').get(pk=quotation_id)
        except (Quotation.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Quotation not found.', code='quotation_not_found')
        return self.refresh_expiry(quotation)

    def refresh_expiry(self, quotation, now=None):
        """Apply lazy expiry to a loaded quotation and persist the coerced status."""
        if quotation.apply_expiry(now or self.clock()):
            Quotation.objects.filter(pk=quotation.pk, status='sent').update(status='expired')
            logger.info(f"Quotation {quotation.quotation_no} expired (valid until {quotation.valid_until})")
        return quotation

    def totals(self, quotation, now=None):
        return self.pricing.summarize(quotation, now or self.clock())

    def status_filter(self, status, now=None):
        """
        Q object matching quotations whose effective status is ``status``:
        a stored ``sent`` row past its validity counts as expired.
        """
        now = now or self.clock()
        if status == 'expired':
            return Q(status='expired') | Q(status='sent', valid_until__lt=now)
        if status == 'sent':
            return Q(status='sent', valid_until__gte=now)
        return Q(status=status)

    def expired(self, now=None):
        return (
            Quotation.objects.filter(self.status_filter('expired', now))
            .select_related('created_by')
            .order_by('valid_until')
        )

    def requiring_follow_up(self, now=None):
        now = now or self.clock()
        return (
            Quotation.objects.filter(follow_up_date__lt=now, status='sent', valid_until__gte=now)
            .select_related('created_by')
            .order_by('follow_up_date')
        )

    def by_status(self, status, limit=50):
        self._check_status(status)
        return (
            Quotation.objects.filter(self.status_filter(status))
            .select_related('enquiry', 'created_by')
            .prefetch_related('items')
            .order_by('-created_at')[:limit]
        )

    def stats(self, now=None):
        now = now or self.clock()
        total = Quotation.objects.count()
        by_status = {
            row['status']: row['count']
            for row in Quotation.objects.values('status').annotate(count=Count('id')).order_by('status')
        }
        accepted = by_status.get('accepted', 0)
        conversion_rate = self.pricing.round_currency(
            Decimal(accepted) * 100 / Decimal(total) if total else 0
        )
        return {
            'total': total,
            'by_status': by_status,
            'expired': self.expired(now).count(),
            'pending': Quotation.objects.filter(self.status_filter('sent', now)).count(),
            'accepted': accepted,
            'conversion_rate': conversion_rate,
            'recent': list(
                Quotation.objects.order_by('-created_at').values(
                    'id', 'quotation_no', 'customer_name', 'company', 'status', 'valid_until', 'created_at'
                )[:10]
            ),
        }

    # =====================================
    # CREATION AND UPDATES
    # =====================================

    def create(self, enquiry_id, products, valid_until, terms, actor, currency=None,
               tax_rate=None, shipping_cost=None, shipping_method='', payment_terms=None,
               custom_payment_terms='', follow_up_date=None, pdf_link=''):
        """Draft a quotation for an existing enquiry and announce it."""
        try:
            enquiry = Enquiry.objects.get(pk=enquiry_id)
        except (Enquiry.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Enquiry not found.', code='enquiry_not_found')

        if not valid_until:
            raise ValidationError('Valid until date is required.')
        if not terms or not str(terms).strip():
            raise ValidationError('Terms are required.')

        lines = self._clean_lines(products)
        now = self.clock()

        quotation = Quotation(
            enquiry=enquiry,
            customer_name=enquiry.customer_name,
            company=enquiry.company,
            email=enquiry.email,
            valid_until=valid_until,
            terms=str(terms).strip(),
            status='draft',
            currency=currency or getattr(settings, 'DEFAULT_QUOTATION_CURRENCY', 'INR'),
            tax_rate=_decimal_field(tax_rate, 'Tax rate', getattr(settings, 'DEFAULT_TAX_RATE', Decimal('0.00'))),
            shipping_cost=_decimal_field(shipping_cost, 'Shipping cost', Decimal('0.00')),
            shipping_method=shipping_method or '',
            payment_terms=payment_terms or getattr(settings, 'DEFAULT_PAYMENT_TERMS', '30_days'),
            custom_payment_terms=custom_payment_terms or '',
            follow_up_date=follow_up_date,
            pdf_link=pdf_link or '',
            created_by=_user(actor),
            created_at=now,
        )

        def build(reference):
            quotation.pk = None
            quotation.quotation_no = reference
            self._validate(quotation)
            quotation.save()
            self._write_lines(quotation, lines)
            return quotation

        create_with_reference(
            self.sequencer, QUOTATION_PREFIX, Quotation, 'quotation_no', build, now=now
        )
        logger.info(
            f"Quotation {quotation.quotation_no} created for enquiry {enquiry.enquiry_no} with {len(lines)} line(s)"
        )
        self._announce(events.quotation_created, quotation, actor, None, 'draft', now)
        return quotation

    def update(self, quotation, changes, actor):
        """
        Patch a quotation. Identity fields are ignored. Replacing ``products``
        records a revision entry and bumps the revision number.
        """
        changes = dict(changes or {})
        for field in IDENTITY_FIELDS:
            changes.pop(field, None)
        products = changes.pop('products', None)

        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown quotation fields: {', '.join(unknown)}")
        if 'status' in changes:
            self._check_status(changes['status'])
        for field in ('tax_rate', 'shipping_cost'):
            if field in changes:
                changes[field] = _decimal_field(changes[field], field.replace('_', ' ').capitalize())

        lines = self._clean_lines(products) if products is not None else None
        now = self.clock()
        old_status = quotation.status

        with self._writing(quotation):
            for field, value in changes.items():
                setattr(quotation, field, value)

            new_status = quotation.status
            if new_status != old_status:
                if new_status == 'accepted' and not quotation.accepted_at:
                    quotation.accepted_at = now
                elif new_status == 'declined' and not quotation.declined_at:
                    quotation.declined_at = now

            if lines is not None:
                QuotationRevision.objects.create(
                    quotation=quotation,
                    revision_no=quotation.revision,
                    modified_at=now,
                    modified_by=_user(actor),
                    changes='Products modified',
                )
                quotation.revision += 1
                quotation.items.all().delete()
                self._write_lines(quotation, lines)

            quotation.apply_expiry(now)
            self._validate(quotation)
            quotation.save()

        logger.info(f"Quotation {quotation.quotation_no} updated by {getattr(_user(actor), 'username', 'system')}")

        if quotation.status != old_status:
            signal = {
                'accepted': events.quotation_accepted,
                'declined': events.quotation_declined,
            }.get(quotation.status, events.quotation_status_changed)
            self._announce(signal, quotation, actor, old_status, quotation.status, now)
        return quotation

    def create_revision(self, quotation, changes, actor):
        """Record a manual revision and return the quotation to draft."""
        summary = (changes or '').strip() if isinstance(changes, str) else ''
        if not summary:
            raise ValidationError('A description of the changes is required.')
        now = self.clock()
        old_status = quotation.status

        with self._writing(quotation):
            QuotationRevision.objects.create(
                quotation=quotation,
                revision_no=quotation.revision,
                modified_at=now,
                modified_by=_user(actor),
                changes=summary,
            )
            quotation.revision += 1
            quotation.status = 'draft'
            quotation.save(update_fields=['revision', 'status', 'updated_at'])

        logger.info(f"Quotation {quotation.quotation_no} revised to revision {quotation.revision}")
        if old_status != 'draft':
            self._announce(events.quotation_status_changed, quotation, actor, old_status, 'draft', now)
        return quotation

    # =====================================
    # TRANSITIONS
    # =====================================

    def send(self, quotation, actor):
        self.refresh_expiry(quotation)
        if quotation.status != 'draft':
            raise PreconditionFailedError('Only draft quotations can be sent.')

        now = self.clock()
        with self._writing(quotation):
            quotation.status = 'sent'
            quotation.sent_at = now
            quotation.sent_by = _user(actor)
            quotation.apply_expiry(now)
            quotation.save(update_fields=['status', 'sent_at', 'sent_by', 'updated_at'])

        logger.info(f"Quotation {quotation.quotation_no} sent to {quotation.email}")
        self._announce(events.quotation_sent, quotation, actor, 'draft', 'sent', now)
        return quotation

    def accept(self, quotation, actor):
        return self._answer(quotation, actor, 'accepted', 'accepted_at', events.quotation_accepted)

    def decline(self, quotation, actor, reason=''):
        return self._answer(
            quotation, actor, 'declined', 'declined_at', events.quotation_declined, reason=reason
        )

    def _answer(self, quotation, actor, status, stamp_field, signal, reason=None):
        self.refresh_expiry(quotation)
        if quotation.status not in ANSWERABLE_STATUSES:
            raise PreconditionFailedError(
                f"Quotation {quotation.quotation_no} is {quotation.status} and can no longer be {status}."
            )

        now = self.clock()
        old_status = quotation.status
        fields = ['status', stamp_field, 'updated_at']
        with self._writing(quotation):
            quotation.status = status
            setattr(quotation, stamp_field, now)
            if reason is not None:
                quotation.decline_reason = (reason or '').strip()
                fields.append('decline_reason')
            quotation.save(update_fields=fields)

        logger.info(f"Quotation {quotation.quotation_no} {status}")
        self._announce(signal, quotation, actor, old_status, status, now)
        return quotation

    def add_internal_note(self, quotation, text, author):
        text = (text or '').strip()
        if not text:
            raise ValidationError('Note text is required.')
        if len(text) > 1000:
            raise ValidationError('Note text cannot exceed 1000 characters.')
        return QuotationNote.objects.create(
            quotation=quotation, text=text, author=_user(author), added_at=self.clock()
        )

    # =====================================
    # HELPERS
    # =====================================

    def _check_status(self, status):
        allowed = [value for value, _ in Quotation.STATUS_CHOICES]
        if status not in allowed:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(allowed)}", code='invalid_status'
            )

    def _clean_lines(self, products):
        if not isinstance(products, (list, tuple)) or not products:
            raise ValidationError('At least one product is required.')

        lines = []
        for index, line in enumerate(products, start=1):
            product_id = line.get('product_id')
            quantity = line.get('quantity')
            unit_price = line.get('unit_price')
            delivery_time = (line.get('delivery_time') or '').strip()
            if not product_id or quantity in (None, '') or unit_price in (None, '') or not delivery_time:
                raise ValidationError(
                    f"Product {index}: Product ID, unit price, quantity, and delivery time are required."
                )

            snapshot = self.catalog.find_by_id(product_id)
            unit = validate_unit(snapshot.category, line.get('unit'))

            try:
                quantity = int(quantity)
            except (TypeError, ValueError):
                raise ValidationError(f"Product {index}: Quantity must be a whole number.")
            if quantity < 1:
                raise ValidationError(f"Product {index}: Quantity must be at least 1.")

            unit_price = _decimal_field(unit_price, f"Product {index}: Unit price")
            discount = _decimal_field(line.get('discount_percent'), 'Discount', Decimal('0.00'))
            if unit_price < 0:
                raise ValidationError(f"Product {index}: Unit price cannot be negative.")
            if not Decimal('0') <= discount <= Decimal('100'):
                raise ValidationError(f"Product {index}: Discount must be between 0 and 100.")

            lines.append({
                'product_id': snapshot.id,
                'product_name': snapshot.name,
                'quantity': quantity,
                'unit': unit,
                'unit_price': unit_price,
                'delivery_time': delivery_time,
                'discount_percent': discount,
                'notes': (line.get('notes') or '').strip(),
            })
        return lines

    @contextmanager
    def _writing(self, quotation):
        """
        Atomic block for changes to ``quotation``. When the block fails the
        instance is reloaded, so the caller never holds half-applied fields.
        """
        try:
            with transaction.atomic():
                yield
        except Exception:
            quotation.refresh_from_db()
            raise

    def _write_lines(self, quotation, lines):
        QuotationItem.objects.bulk_create([
            QuotationItem(quotation=quotation, sort_order=order, **line)
            for order, line in enumerate(lines, start=1)
        ])

    def _validate(self, quotation):
        try:
            quotation.full_clean(validate_unique=False)
        except DjangoValidationError as e:
            raise from_django_validation(e)

    def _announce(self, signal, quotation, actor, old_status, new_status, now):
        if not isinstance(actor, AuthContext):
            actor = AuthContext.from_user(actor)
        return self.publish(
            signal,
            sender=Quotation,
            quotation=quotation,
            actor=actor,
            old_status=old_status,
            new_status=new_status,
            occurred_at=now,
        )
