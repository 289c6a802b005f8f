"""
Enquiry Lifecycle

An enquiry moves new → in_review → quoted → approved/rejected → closed, with
staff free to reject it at any point before it is closed. Staff may also set
any valid status directly; no transition graph is enforced beyond rejecting
unknown values.

Quotation events (created, sent, accepted, declined) reach this module through
the receivers in enquiries/signals.py and are applied with the on_quotation_*
handlers below. Notes, communications and activities are append-only rows.
"""

import logging
import re

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from catalog.gateway import CatalogGateway
from catalog.units import validate_unit
from core.auth import AuthContext
from core.exceptions import NotFoundError, ValidationError, from_django_validation
from core.sequencer import IdentitySequencer, create_with_reference

from .models import Enquiry, EnquiryProduct, EnquiryNote, Communication, EnquiryActivity

logger = logging.getLogger(__name__)

ENQUIRY_PREFIX = 'ENQ'
CUSTOMER_FIELDS = ('customer_name', 'company', 'email', 'phone', 'message')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')

STATUS_MESSAGES = {
    'new': 'We have received your enquiry and will review it shortly.',
    'in_review': 'Your enquiry is being reviewed by our team.',
    'quoted': 'A quotation has been prepared for your enquiry.',
    'approved': 'Your enquiry has been approved. A quotation will be sent to you.',
    'rejected': 'Your enquiry could not be processed at this time.',
    'closed': 'Your enquiry has been completed. Thank you for your business.',
}


def _choice_values(choices):
    return [value for value, _ in choices]


def _require_choice(value, choices, label):
    allowed = _choice_values(choices)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {label}. Must be one of: {', '.join(allowed)}",
            code=f'invalid_{label}',
        )
    return value


def _actor_user(actor):
    if isinstance(actor, AuthContext):
        return actor.user
    return actor


class EnquiryLifecycle:
    """State transitions, notes, communications and the activity trail of enquiries."""

    def __init__(self, catalog=None, sequencer=None, clock=None):
        self.clock = clock or timezone.now
        self.catalog = catalog or CatalogGateway()
        self.sequencer = sequencer or IdentitySequencer(clock=self.clock)

    # =====================================
    # LOOKUPS
    # =====================================

    def get(self, enquiry_id):
        try:
            return Enquiry.objects.get(pk=enquiry_id)
        except (Enquiry.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Enquiry not found.', code='enquiry_not_found')

    def by_status(self, status, limit=50):
        _require_choice(status, Enquiry.STATUS_CHOICES, 'status')
        return (
            Enquiry.objects.filter(status=status)
            .select_related('assigned_to')
            .prefetch_related('products')
            .order_by('-created_at')[:limit]
        )

    def overdue(self, now=None):
        now = now or self.clock()
        return (
            Enquiry.objects.filter(follow_up_date__lt=now, status='in_review')
            .select_related('assigned_to')
            .order_by('follow_up_date')
        )

    def public_status(self, enquiry_no, email):
        """Customer-facing status lookup; both the number and the email must match."""
        if not enquiry_no or not email:
            raise ValidationError('Enquiry number and email are required.')
        enquiry = (
            Enquiry.objects.filter(enquiry_no=enquiry_no, email=email.strip().lower())
            .prefetch_related('products')
            .first()
        )
        if enquiry is None:
            raise NotFoundError('Enquiry not found or email does not match.', code='enquiry_not_found')

        lines = list(enquiry.products.all())
        return {
            'enquiry_no': enquiry.enquiry_no,
            'customer_name': enquiry.customer_name,
            'company': enquiry.company,
            'status': enquiry.status,
            'status_message': STATUS_MESSAGES.get(enquiry.status),
            'submitted_at': enquiry.created_at,
            'product_count': len(lines),
            'total_quantity': sum(line.quantity for line in lines),
        }

    def stats(self, now=None):
        now = now or self.clock()

        def grouped(field):
            return {
                row[field]: row['count']
                for row in Enquiry.objects.values(field).annotate(count=Count('id')).order_by(field)
            }

        top_assignees = (
            Enquiry.objects.filter(assigned_to__isnull=False)
            .values('assigned_to', 'assigned_to__username', 'assigned_to__email')
            .annotate(count=Count('id'))
            .order_by('-count')[:5]
        )
        return {
            'total': Enquiry.objects.count(),
            'by_status': grouped('status'),
            'by_priority': grouped('priority'),
            'by_source': grouped('source'),
            'overdue': self.overdue(now).count(),
            'recent': list(
                Enquiry.objects.order_by('-created_at').values(
                    'id', 'enquiry_no', 'customer_name', 'company', 'status', 'priority', 'created_at'
                )[:10]
            ),
            'top_assignees': [
                {
                    'user_id': row['assigned_to'],
                    'username': row['assigned_to__username'],
                    'email': row['assigned_to__email'],
                    'count': row['count'],
                }
                for row in top_assignees
            ],
        }

    # =====================================
    # CREATION
    # =====================================

    def create(self, customer, products, source='website', attachments=None):
        """
        Create an enquiry from a public or staff submission.

        ``customer`` holds customer_name, company, email, phone and message.
        ``products`` is a list of {product_id, quantity, unit?, notes?}. At least
        one line is required unless the enquiry comes from the contact form.
        """
        _require_choice(source, Enquiry.SOURCE_CHOICES, 'source')
        customer = self._clean_customer(customer, source)

        products = products or []
        if not isinstance(products, (list, tuple)):
            raise ValidationError('Products must be a list.')
        if source != 'contact_form' and not products:
            raise ValidationError('At least one product must be specified in the enquiry.')

        lines = [self._clean_line(index, line) for index, line in enumerate(products, start=1)]
        now = self.clock()

        enquiry = Enquiry(
            source=source,
            status='new',
            attachments=[a.strip() for a in (attachments or []) if a and str(a).strip()],
            created_at=now,
            **customer,
        )

        def build(reference):
            enquiry.pk = None
            enquiry.enquiry_no = reference
            self._validate(enquiry)
            enquiry.save()
            EnquiryProduct.objects.bulk_create([
                EnquiryProduct(enquiry=enquiry, sort_order=order, **line)
                for order, line in enumerate(lines, start=1)
            ])
            return enquiry

        create_with_reference(
            self.sequencer, ENQUIRY_PREFIX, Enquiry, 'enquiry_no', build, now=now
        )
        logger.info(f"Enquiry {enquiry.enquiry_no} created from {source} with {len(lines)} product(s)")
        return enquiry

    def submit_contact_form(self, name, email, subject, message):
        """General contact-form message stored as a product-less enquiry."""
        missing = [
            label for label, value in
            (('name', name), ('email', email), ('subject', subject), ('message', message))
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError(
                'All fields (name, email, subject, message) are required.',
                details={field: ['This field is required.'] for field in missing},
            )
        return self.create(
            customer={
                'customer_name': name,
                'company': 'N/A',
                'email': email,
                'phone': 'N/A',
                'message': f"Subject: {subject.strip()}\n\n{message.strip()}",
            },
            products=[],
            source='contact_form',
        )

    def _clean_customer(self, customer, source):
        customer = customer or {}
        cleaned = {}
        missing = []
        for field in CUSTOMER_FIELDS:
            value = customer.get(field)
            value = str(value).strip() if value is not None else ''
            if not value:
                missing.append(field)
            cleaned[field] = value
        if missing:
            raise ValidationError(
                'All customer information fields are required.',
                details={field: ['This field is required.'] for field in missing},
            )

        cleaned['email'] = cleaned['email'].lower()
        if source != 'contact_form' and not PHONE_PATTERN.match(cleaned['phone']):
            raise ValidationError(
                'Please enter a valid phone number',
                details={'phone': ['Please enter a valid phone number']},
            )
        return cleaned

    def _clean_line(self, index, line):
        product_id = line.get('product_id')
        quantity = line.get('quantity')
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            quantity = 0
        if not product_id or quantity < 1:
            raise ValidationError(f"Product {index}: Product ID and valid quantity are required.")

        snapshot = self.catalog.find_by_id(product_id, require_active=True)
        unit = line.get('unit')
        if unit not in (None, ''):
            unit = validate_unit(snapshot.category, unit)
        return {
            'product_id': snapshot.id,
            'product_name': snapshot.name,
            'quantity': quantity,
            'unit': unit or '',
            'notes': (line.get('notes') or '').strip(),
        }

    def _validate(self, enquiry):
        try:
            enquiry.full_clean(validate_unique=False)
        except DjangoValidationError as e:
            raise from_django_validation(e)

    # =====================================
    # STAFF OPERATIONS
    # =====================================

    def assign(self, enquiry, user, actor=None):
        """Set the owner; a new enquiry moves to in_review, later statuses are kept."""
        if user is None:
            raise ValidationError('Assigned user not found.')
        previous = enquiry.status
        with transaction.atomic():
            enquiry.assigned_to = user
            fields = ['assigned_to', 'updated_at']
            if enquiry.status == 'new':
                enquiry.status = 'in_review'
                fields.append('status')
            enquiry.save(update_fields=fields)
            if enquiry.status != previous:
                self._record_status_change(enquiry, previous, enquiry.status, actor)
        logger.info(f"Enquiry {enquiry.enquiry_no} assigned to {user.username}")
        return enquiry

    def set_status(self, enquiry, status, actor=None):
        _require_choice(status, Enquiry.STATUS_CHOICES, 'status')
        previous = enquiry.status
        if previous == status:
            return enquiry
        with transaction.atomic():
            enquiry.status = status
            enquiry.save(update_fields=['status', 'updated_at'])
            self._record_status_change(enquiry, previous, status, actor)
        logger.info(f"Enquiry {enquiry.enquiry_no} status changed from {previous} to {status}")
        return enquiry

    def set_priority(self, enquiry, priority):
        enquiry.priority = _require_choice(priority, Enquiry.PRIORITY_CHOICES, 'priority')
        enquiry.save(update_fields=['priority', 'updated_at'])
        return enquiry

    def set_follow_up(self, enquiry, follow_up_date):
        enquiry.follow_up_date = follow_up_date
        enquiry.save(update_fields=['follow_up_date', 'updated_at'])
        return enquiry

    def update(self, enquiry, actor, status=None, assigned_to=None, priority=None,
               follow_up_date=None, internal_note=None):
        """Dashboard patch: any combination of status, owner, priority, follow-up and a note."""
        if status:
            _require_choice(status, Enquiry.STATUS_CHOICES, 'status')
        if priority:
            _require_choice(priority, Enquiry.PRIORITY_CHOICES, 'priority')

        with transaction.atomic():
            if status:
                self.set_status(enquiry, status, actor)
            if assigned_to is not None:
                self.assign(enquiry, assigned_to, actor)
            if priority:
                self.set_priority(enquiry, priority)
            if follow_up_date:
                self.set_follow_up(enquiry, follow_up_date)
            if internal_note and internal_note.strip():
                self.add_internal_note(enquiry, internal_note, _actor_user(actor))
        return enquiry

    def bulk_update(self, enquiry_ids, actor, **changes):
        """
        Apply the same dashboard patch to several enquiries. Each enquiry goes
        through ``update`` so status changes are recorded per enquiry.
        Returns the matched and modified counts.
        """
        if not enquiry_ids:
            raise ValidationError('Enquiry IDs array is required.')
        changes = {field: value for field, value in changes.items() if value not in (None, '')}
        if not changes:
            raise ValidationError('Update data is required.')

        tracked = ('status', 'assigned_to_id', 'priority', 'follow_up_date')
        matched = modified = 0
        with transaction.atomic():
            for enquiry in Enquiry.objects.filter(pk__in=enquiry_ids).order_by('pk'):
                before = [getattr(enquiry, field) for field in tracked]
                self.update(enquiry, actor, **changes)
                matched += 1
                if [getattr(enquiry, field) for field in tracked] != before or 'internal_note' in changes:
                    modified += 1

        logger.info(f"Bulk update touched {modified} of {matched} enquiries")
        return {'matched': matched, 'modified': modified}

    def add_internal_note(self, enquiry, text, author):
        text = (text or '').strip()
        if not text:
            raise ValidationError('Note text is required.')
        if len(text) > 1000:
            raise ValidationError('Note text cannot exceed 1000 characters.')
        return EnquiryNote.objects.create(
            enquiry=enquiry, text=text, author=_actor_user(author), added_at=self.clock()
        )

    def add_communication(self, enquiry, channel, subject, body, direction, handled_by=None):
        if not channel or not subject or not body or not direction:
            raise ValidationError('Type, subject, content, and direction are required.')
        _require_choice(channel, Communication.CHANNEL_CHOICES, 'channel')
        _require_choice(direction, Communication.DIRECTION_CHOICES, 'direction')

        communication = Communication(
            enquiry=enquiry,
            channel=channel,
            subject=subject.strip(),
            body=body.strip(),
            direction=direction,
            handled_by=_actor_user(handled_by),
            communicated_at=self.clock(),
        )
        try:
            communication.full_clean()
        except DjangoValidationError as e:
            raise from_django_validation(e)
        communication.save()
        return communication

    def record_activity(self, enquiry, activity_type, description, performed_by=None,
                        quotation=None, old_status=None, new_status=None, performed_at=None):
        _require_choice(activity_type, EnquiryActivity.ACTIVITY_TYPES, 'activity type')
        return EnquiryActivity.objects.create(
            enquiry=enquiry,
            activity_type=activity_type,
            description=description[:500],
            performed_by=_actor_user(performed_by),
            performed_at=performed_at or self.clock(),
            quotation_ref=quotation.pk if quotation is not None else None,
            quotation_no=quotation.quotation_no if quotation is not None else '',
            old_status=old_status or '',
            new_status=new_status or '',
        )

    def _record_status_change(self, enquiry, old_status, new_status, actor):
        self.record_activity(
            enquiry,
            'status_updated',
            f"Enquiry status updated from {old_status} to {new_status}",
            performed_by=actor,
            old_status=old_status,
            new_status=new_status,
        )

    # =====================================
    # QUOTATION EVENT HANDLERS
    # =====================================

    def on_quotation_created(self, quotation, actor=None, occurred_at=None, **kwargs):
        enquiry = self.get(quotation.enquiry_id)
        previous = enquiry.status
        with transaction.atomic():
            enquiry.status = 'quoted'
            enquiry.save(update_fields=['status', 'updated_at'])
            self.record_activity(
                enquiry,
                'quotation_created',
                f"Quotation {quotation.quotation_no} created for this enquiry",
                performed_by=actor,
                quotation=quotation,
                old_status=previous,
                new_status='quoted',
                performed_at=occurred_at,
            )
        return enquiry

    def on_quotation_sent(self, quotation, actor=None, occurred_at=None, **kwargs):
        enquiry = self.get(quotation.enquiry_id)
        self.record_activity(
            enquiry,
            'quotation_sent',
            f"Quotation {quotation.quotation_no} sent to customer",
            performed_by=actor,
            quotation=quotation,
            performed_at=occurred_at,
        )
        return enquiry

    def on_quotation_accepted(self, quotation, actor=None, old_status=None, new_status=None,
                              occurred_at=None, **kwargs):
        return self._apply_quotation_outcome(
            quotation, 'closed', 'quotation_accepted',
            f"Quotation {quotation.quotation_no} was accepted by customer",
            actor, old_status, new_status, occurred_at,
        )

    def on_quotation_declined(self, quotation, actor=None, old_status=None, new_status=None,
                              occurred_at=None, **kwargs):
        return self._apply_quotation_outcome(
            quotation, 'rejected', 'quotation_rejected',
            f"Quotation {quotation.quotation_no} was rejected by customer",
            actor, old_status, new_status, occurred_at,
        )

    def on_quotation_status_changed(self, quotation, actor=None, old_status=None, new_status=None,
                                    occurred_at=None, **kwargs):
        enquiry = self.get(quotation.enquiry_id)
        self.record_activity(
            enquiry,
            'status_updated',
            f"Quotation {quotation.quotation_no} status updated from {old_status} to {new_status}",
            performed_by=actor,
            quotation=quotation,
            old_status=old_status,
            new_status=new_status,
            performed_at=occurred_at,
        )
        return enquiry

    def _apply_quotation_outcome(self, quotation, enquiry_status, activity_type, description,
                                 actor, old_status, new_status, occurred_at):
        enquiry = self.get(quotation.enquiry_id)
        with transaction.atomic():
            enquiry.status = enquiry_status
            enquiry.save(update_fields=['status', 'updated_at'])
            self.record_activity(
                enquiry,
                activity_type,
                description,
                performed_by=actor,
                quotation=quotation,
                old_status=old_status,
                new_status=new_status,
                performed_at=occurred_at,
            )
        logger.info(
            f"Enquiry {enquiry.enquiry_no} moved to {enquiry_status} after quotation {quotation.quotation_no} was {new_status}"
        )
        return enquiry
