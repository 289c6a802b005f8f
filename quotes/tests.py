# quotes/tests.py - Quotation lifecycle, pricing and API

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib import admin
from django.contrib.auth.models import User
from django.core.cache import cache
from django.db import DatabaseError
from django.test import RequestFactory, TestCase
from rest_framework.test import APIClient

from catalog.models import Product
from core.auth import AuthContext
from core.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from core.models import StaffProfile
from enquiries.models import EnquiryActivity
from enquiries.services import EnquiryLifecycle
from . import events
from .models import Quotation
from .pricing import PricingCalculator
from .services import QuotationLifecycle


NOW = datetime(2025, 10, 15, 6, 30, tzinfo=dt_timezone.utc)


class RecordingPublisher:
    """Stands in for the signal publisher and remembers what was announced"""

    def __init__(self):
        self.published = []

    def __call__(self, signal, sender, **payload):
        self.published.append((signal, payload))
        return []

    @property
    def signals(self):
        return [signal for signal, _ in self.published]


class PricingCalculatorTest(TestCase):

    def test_totals_example(self):
        quotation = SimpleNamespace(
            tax_rate=Decimal('10'), shipping_cost=Decimal('20'), valid_until=NOW + timedelta(days=3),
            status='draft', sent_at=None, accepted_at=None, declined_at=None,
        )
        lines = [
            SimpleNamespace(unit_price=Decimal('100'), discount_percent=Decimal('10'), quantity=2),
            SimpleNamespace(unit_price=Decimal('50'), discount_percent=Decimal('0'), quantity=1),
        ]
        totals = PricingCalculator().summarize(quotation, NOW, lines=lines)

        self.assertEqual(totals.subtotal, Decimal('230'))
        self.assertEqual(totals.tax_amount, Decimal('23'))
        self.assertEqual(totals.total_amount, Decimal('273'))
        self.assertEqual(totals.days_until_expiry, 3)
        self.assertIsNone(totals.response_time_days)
        self.assertFalse(totals.is_expired)

    def test_expiry_never_applies_to_answered_quotations(self):
        calculator = PricingCalculator()
        past = NOW - timedelta(minutes=1)
        self.assertTrue(calculator.is_expired(SimpleNamespace(valid_until=past, status='sent'), NOW))
        self.assertTrue(calculator.is_expired(SimpleNamespace(valid_until=past, status='expired'), NOW))
        self.assertFalse(calculator.is_expired(SimpleNamespace(valid_until=past, status='declined'), NOW))
        self.assertFalse(calculator.is_expired(SimpleNamespace(valid_until=past, status='accepted'), NOW))
        self.assertEqual(calculator.days_until_expiry(SimpleNamespace(valid_until=past), NOW), 0)
        self.assertEqual(
            calculator.days_until_expiry(SimpleNamespace(valid_until=NOW - timedelta(days=2)), NOW), -2
        )

    def test_response_time_rounds_up(self):
        quotation = SimpleNamespace(
            sent_at=NOW, accepted_at=NOW + timedelta(days=1, hours=2), declined_at=None
        )
        self.assertEqual(PricingCalculator().response_time_days(quotation), 2)

    def test_round_currency_half_up(self):
        calculator = PricingCalculator()
        self.assertEqual(calculator.round_currency(Decimal('2.345')), Decimal('2.35'))
        self.assertEqual(calculator.round_currency(None), Decimal('0.00'))


class QuotationTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.yarn = Product.objects.create(sku='YRN-30S', name='30s Combed Cotton Yarn', category='Yarn', status='active')
        self.denim = Product.objects.create(sku='DNM-10', name='10oz Denim', category='Denim', status='active')
        self.staff = User.objects.create_user('priya', 'priya@texhub.in', 'StaffPass123!')
        self.staff.staff_profile.set_role(StaffProfile.ROLE_EDITOR)
        self.actor = AuthContext(user=self.staff, role=StaffProfile.ROLE_EDITOR)

        self.enquiry = EnquiryLifecycle(clock=lambda: NOW).create(
            customer={
                'customer_name': 'Asha Rao',
                'company': 'Rao Mills',
                'email': 'asha@raomills.in',
                'phone': '+919812345678',
                'message': 'Monthly yarn and denim supply',
            },
            products=[{'product_id': self.yarn.pk, 'quantity': 500, 'unit': 'kg'}],
        )
        self.lifecycle = QuotationLifecycle(clock=lambda: NOW)

    def lines(self):
        return [
            {'product_id': self.yarn.pk, 'quantity': 2, 'unit': 'kg', 'unit_price': '100',
             'discount_percent': '10', 'delivery_time': '2 weeks'},
            {'product_id': self.denim.pk, 'quantity': 1, 'unit': 'm', 'unit_price': '50',
             'delivery_time': '3 weeks'},
        ]

    def make_quotation(self, lifecycle=None, **overrides):
        options = {
            'enquiry_id': self.enquiry.pk,
            'products': self.lines(),
            'valid_until': NOW + timedelta(days=30),
            'terms': 'Ex-mill, 50% advance.',
            'actor': self.actor,
            'tax_rate': '10',
            'shipping_cost': '20',
        }
        options.update(overrides)
        return (lifecycle or self.lifecycle).create(**options)

    def activities(self, activity_type):
        return EnquiryActivity.objects.filter(enquiry=self.enquiry, activity_type=activity_type)


class QuotationCreationTest(QuotationTestCase):

    def test_create_drafts_quotation_and_marks_enquiry_quoted(self):
        quotation = self.make_quotation()

        self.assertEqual(quotation.quotation_no, 'QUO25100001')
        self.assertEqual(quotation.status, 'draft')
        self.assertEqual(quotation.revision, 1)
        self.assertEqual(quotation.customer_name, 'Asha Rao')
        self.assertEqual(quotation.created_by, self.staff)
        self.assertEqual([i.product_name for i in quotation.items.all()], ['30s Combed Cotton Yarn', '10oz Denim'])

        self.enquiry.refresh_from_db()
        self.assertEqual(self.enquiry.status, 'quoted')
        activity = self.activities('quotation_created').get()
        self.assertEqual(activity.quotation_no, quotation.quotation_no)
        self.assertEqual(activity.quotation_ref, quotation.pk)
        self.assertEqual(activity.performed_at, NOW)

    def test_totals_are_derived(self):
        totals = self.lifecycle.totals(self.make_quotation())
        self.assertEqual(totals.subtotal, Decimal('230'))
        self.assertEqual(totals.tax_amount, Decimal('23'))
        self.assertEqual(totals.total_amount, Decimal('273'))

    def test_unit_must_match_category(self):
        lines = self.lines()
        lines[1]['unit'] = 'kg'
        with self.assertRaises(ValidationError) as ctx:
            self.make_quotation(products=lines)
        self.assertIn('m, yards, rolls', ctx.exception.message)
        self.assertEqual(Quotation.objects.count(), 0)

        lines[1]['unit'] = 'rolls'
        self.assertEqual(self.make_quotation(products=lines).items.count(), 2)

    def test_blank_unit_names_allowed_units(self):
        for blank in ('', None):
            lines = self.lines()
            lines[1]['unit'] = blank
            with self.assertRaises(ValidationError) as ctx:
                self.make_quotation(products=lines)
            self.assertIn('m, yards, rolls', ctx.exception.message)
            self.assertEqual(ctx.exception.code, 'invalid_unit')

        lines = self.lines()
        del lines[1]['unit']
        with self.assertRaises(ValidationError):
            self.make_quotation(products=lines)
        self.assertEqual(Quotation.objects.count(), 0)

    def test_missing_references_not_found(self):
        with self.assertRaises(NotFoundError):
            self.make_quotation(enquiry_id=987654)

        lines = self.lines()
        lines[0]['product_id'] = 987654
        with self.assertRaises(NotFoundError):
            self.make_quotation(products=lines)

    def test_lines_required(self):
        with self.assertRaises(ValidationError):
            self.make_quotation(products=[])

        lines = self.lines()
        del lines[0]['delivery_time']
        with self.assertRaises(ValidationError):
            self.make_quotation(products=lines)

    def test_custom_payment_terms_need_text(self):
        with self.assertRaises(ValidationError):
            self.make_quotation(payment_terms='custom')
        quotation = self.make_quotation(payment_terms='custom', custom_payment_terms='45 days from B/L')
        self.assertEqual(quotation.payment_terms, 'custom')


class QuotationUpdateTest(QuotationTestCase):

    def setUp(self):
        super().setUp()
        self.publisher = RecordingPublisher()
        self.lifecycle = QuotationLifecycle(clock=lambda: NOW, publish=self.publisher)

    def test_each_products_update_adds_a_revision(self):
        quotation = self.make_quotation()
        lines = self.lines()

        lines[0]['quantity'] = 5
        self.lifecycle.update(quotation, {'products': lines}, self.actor)
        lines[1]['unit_price'] = '55'
        self.lifecycle.update(quotation, {'products': lines}, self.actor)

        quotation.refresh_from_db()
        self.assertEqual(quotation.revision, 3)
        history = list(quotation.previous_revisions.all())
        self.assertEqual([entry.revision_no for entry in history], [1, 2])
        self.assertEqual(history[0].changes, 'Products modified')
        self.assertEqual(history[0].modified_by, self.staff)
        self.assertEqual(quotation.items.count(), 2)

    def test_scalar_update_keeps_revision(self):
        quotation = self.make_quotation()
        self.lifecycle.update(quotation, {'terms': 'Ex-mill, full advance.', 'quotation_no': 'QUO00000000'}, self.actor)
        quotation.refresh_from_db()
        self.assertEqual(quotation.revision, 1)
        self.assertEqual(quotation.quotation_no, 'QUO25100001')
        self.assertEqual(quotation.terms, 'Ex-mill, full advance.')

    def test_status_changes_are_announced(self):
        quotation = self.make_quotation()
        self.lifecycle.update(quotation, {'status': 'sent'}, self.actor)
        self.lifecycle.update(quotation, {'status': 'accepted'}, self.actor)

        self.assertEqual(self.publisher.signals, [
            events.quotation_created,
            events.quotation_status_changed,
            events.quotation_accepted,
        ])
        _, payload = self.publisher.published[-1]
        self.assertEqual((payload['old_status'], payload['new_status']), ('sent', 'accepted'))
        self.assertEqual(payload['actor'], self.actor)

    def test_invalid_status_rejected(self):
        quotation = self.make_quotation()
        with self.assertRaises(ValidationError):
            self.lifecycle.update(quotation, {'status': 'archived'}, self.actor)

    def test_create_revision_returns_to_draft(self):
        quotation = self.make_quotation()
        self.lifecycle.send(quotation, self.actor)
        self.lifecycle.create_revision(quotation, 'Reduced denim price', self.actor)

        quotation.refresh_from_db()
        self.assertEqual(quotation.status, 'draft')
        self.assertEqual(quotation.revision, 2)
        self.assertEqual(quotation.previous_revisions.get().changes, 'Reduced denim price')

    def test_failed_update_leaves_quotation_untouched(self):
        quotation = self.make_quotation()
        lines = self.lines()
        lines[0]['quantity'] = 5

        with self.assertRaises(ValidationError):
            self.lifecycle.update(quotation, {'products': lines, 'payment_terms': 'custom'}, self.actor)
        self.assertEqual(quotation.revision, 1)
        self.assertEqual(quotation.payment_terms, '30_days')
        self.assertEqual(quotation.previous_revisions.count(), 0)
        self.assertEqual(quotation.items.get(sort_order=1).quantity, 2)

        self.lifecycle.update(quotation, {'products': lines}, self.actor)
        quotation.refresh_from_db()
        self.assertEqual(quotation.revision, 2)
        self.assertEqual([entry.revision_no for entry in quotation.previous_revisions.all()], [1])

    def test_products_update_revalidates_lines(self):
        quotation = self.make_quotation()

        lines = self.lines()
        lines[1]['unit'] = 'kg'
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.update(quotation, {'products': lines}, self.actor)
        self.assertIn('m, yards, rolls', ctx.exception.message)

        lines = self.lines()
        lines[0]['product_id'] = 987654
        with self.assertRaises(NotFoundError):
            self.lifecycle.update(quotation, {'products': lines}, self.actor)

        quotation.refresh_from_db()
        self.assertEqual(quotation.revision, 1)
        self.assertEqual(quotation.previous_revisions.count(), 0)
        self.assertEqual([item.unit for item in quotation.items.all()], ['kg', 'm'])

    def test_failed_send_reloads_quotation(self):
        quotation = self.make_quotation()
        with patch.object(Quotation, 'save', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                self.lifecycle.send(quotation, self.actor)

        self.assertEqual(quotation.status, 'draft')
        self.assertIsNone(quotation.sent_at)
        self.assertIsNone(quotation.sent_by)
        self.assertNotIn(events.quotation_sent, self.publisher.signals)


class QuotationTransitionTest(QuotationTestCase):

    def test_send_requires_draft(self):
        quotation = self.make_quotation()
        self.lifecycle.send(quotation, self.actor)
        self.assertEqual(quotation.status, 'sent')
        self.assertEqual(quotation.sent_at, NOW)
        self.assertEqual(quotation.sent_by, self.staff)
        self.assertEqual(self.activities('quotation_sent').count(), 1)

        before = Quotation.objects.values().get(pk=quotation.pk)
        later = QuotationLifecycle(clock=lambda: NOW + timedelta(hours=1))
        with self.assertRaises(PreconditionFailedError):
            later.send(quotation, self.actor)
        self.assertEqual(Quotation.objects.values().get(pk=quotation.pk), before)
        self.assertEqual(quotation.previous_revisions.count(), 0)
        self.assertEqual(quotation.items.count(), 2)
        self.assertEqual(self.activities('quotation_sent').count(), 1)

    def test_accept_closes_enquiry(self):
        quotation = self.make_quotation()
        self.lifecycle.send(quotation, self.actor)
        self.lifecycle.accept(quotation, self.actor)

        self.assertEqual(quotation.accepted_at, NOW)
        self.enquiry.refresh_from_db()
        self.assertEqual(self.enquiry.status, 'closed')
        activity = self.activities('quotation_accepted').get()
        self.assertEqual((activity.old_status, activity.new_status), ('sent', 'accepted'))

        with self.assertRaises(PreconditionFailedError):
            self.lifecycle.decline(quotation, self.actor, 'Too late')

    def test_decline_rejects_enquiry(self):
        quotation = self.make_quotation()
        self.lifecycle.decline(quotation, self.actor, 'Price too high')

        quotation.refresh_from_db()
        self.assertEqual(quotation.status, 'declined')
        self.assertEqual(quotation.decline_reason, 'Price too high')
        self.enquiry.refresh_from_db()
        self.assertEqual(self.enquiry.status, 'rejected')
        self.assertEqual(self.activities('quotation_rejected').count(), 1)

    def test_sent_quotation_expires_lazily(self):
        quotation = self.make_quotation(valid_until=NOW + timedelta(days=1))
        self.lifecycle.send(quotation, self.actor)

        later = QuotationLifecycle(clock=lambda: NOW + timedelta(days=2))
        reloaded = later.get(quotation.pk)
        self.assertEqual(reloaded.status, 'expired')
        self.assertTrue(later.totals(reloaded).is_expired)
        self.assertTrue(reloaded.is_expired)
        self.assertEqual(Quotation.objects.get(pk=quotation.pk).status, 'expired')
        self.assertIn(reloaded, later.expired())

        with self.assertRaises(PreconditionFailedError):
            later.accept(reloaded, self.actor)

    def test_accepted_quotation_never_expires(self):
        quotation = self.make_quotation(valid_until=NOW + timedelta(days=1))
        self.lifecycle.accept(quotation, self.actor)

        later = QuotationLifecycle(clock=lambda: NOW + timedelta(days=2))
        reloaded = later.get(quotation.pk)
        self.assertEqual(reloaded.status, 'accepted')
        self.assertFalse(later.totals(reloaded).is_expired)

    def test_failing_enquiry_handler_does_not_fail_quotation(self):
        quotation = self.make_quotation()
        with patch.object(EnquiryLifecycle, 'on_quotation_sent', side_effect=RuntimeError('store unavailable')):
            with self.assertLogs('quotes.events', level='ERROR'):
                self.lifecycle.send(quotation, self.actor)

        self.assertEqual(Quotation.objects.get(pk=quotation.pk).status, 'sent')
        self.assertEqual(self.activities('quotation_sent').count(), 0)

    def test_notes_and_stats(self):
        quotation = self.make_quotation()
        self.lifecycle.add_internal_note(quotation, 'Check cone weight', self.staff)
        self.assertEqual(quotation.internal_notes.get().author, self.staff)

        self.lifecycle.accept(quotation, self.actor)
        self.make_quotation()
        stats = self.lifecycle.stats()
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['accepted'], 1)
        self.assertEqual(stats['conversion_rate'], Decimal('50.00'))

    def test_follow_up_query(self):
        quotation = self.make_quotation(follow_up_date=NOW - timedelta(days=1))
        self.assertEqual(self.lifecycle.requiring_follow_up().count(), 0)
        self.lifecycle.send(quotation, self.actor)
        self.assertEqual(list(self.lifecycle.requiring_follow_up()), [quotation])

    def test_by_status(self):
        draft = self.make_quotation()
        sent = self.make_quotation()
        self.lifecycle.send(sent, self.actor)

        self.assertEqual(list(self.lifecycle.by_status('draft')), [draft])
        self.assertEqual(list(self.lifecycle.by_status('sent')), [sent])
        with self.assertRaises(ValidationError):
            self.lifecycle.by_status('lost')


class QuotationApiTest(QuotationTestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.staff)

    def payload(self):
        return {
            'enquiry_id': self.enquiry.pk,
            'products': self.lines(),
            'valid_until': (datetime.now(dt_timezone.utc) + timedelta(days=30)).isoformat(),
            'terms': 'Ex-mill, 50% advance.',
            'tax_rate': '10',
            'shipping_cost': '20',
        }

    def test_create_send_and_read(self):
        response = self.client.post('/api/quotations/', self.payload(), format='json')
        self.assertEqual(response.status_code, 201)
        data = response.data['data']
        self.assertEqual(data['status'], 'draft')
        self.assertEqual(data['totals']['total_amount'], Decimal('273.00'))

        response = self.client.post(f"/api/quotations/{data['id']}/send/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], 'sent')

        response = self.client.post(f"/api/quotations/{data['id']}/send/")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'precondition_failed')

        response = self.client.get('/api/quotations/')
        self.assertEqual(response.status_code, 200)

    def test_invalid_unit_is_bad_request(self):
        payload = self.payload()
        payload['products'][0]['unit'] = 'pcs'
        response = self.client.post('/api/quotations/', payload, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_unit')

    def test_viewer_cannot_create(self):
        viewer = User.objects.create_user('viewer', 'viewer@texhub.in', 'ViewerPass123!')
        self.client.force_authenticate(viewer)
        response = self.client.post('/api/quotations/', self.payload(), format='json')
        self.assertEqual(response.status_code, 403)

    def test_list_filters_on_effective_status(self):
        stale = self.make_quotation()
        self.lifecycle.send(stale, self.actor)
        current = self.make_quotation(valid_until=datetime.now(dt_timezone.utc) + timedelta(days=30))
        self.lifecycle.send(current, self.actor)

        response = self.client.get('/api/quotations/', {'status': 'sent'})
        self.assertEqual([row['quotation_no'] for row in response.data['results']], [current.quotation_no])

        response = self.client.get('/api/quotations/', {'status': 'expired'})
        rows = response.data['results']
        self.assertEqual([row['quotation_no'] for row in rows], [stale.quotation_no])
        self.assertEqual(rows[0]['status'], 'expired')
        self.assertTrue(rows[0]['totals']['is_expired'])


class QuotationAdminTest(QuotationTestCase):

    def setUp(self):
        super().setUp()
        self.request = RequestFactory().post('/admin/quotes/quotation/')
        self.request.user = self.staff
        self.model_admin = admin.site._registry[Quotation]

    def test_status_only_changes_through_actions(self):
        quotation = self.make_quotation()
        self.assertIn('status', self.model_admin.get_readonly_fields(self.request, quotation))
        self.assertEqual(
            set(self.model_admin.actions), {'mark_as_sent', 'mark_as_accepted', 'mark_as_declined'}
        )

    def test_lines_notes_and_revisions_are_read_only(self):
        quotation = self.make_quotation()
        for inline_class in self.model_admin.inlines:
            inline = inline_class(Quotation, admin.site)
            self.assertFalse(inline.can_delete, inline_class.__name__)
            self.assertFalse(inline.has_add_permission(self.request, quotation), inline_class.__name__)
            self.assertEqual(set(inline.readonly_fields), set(inline.fields), inline_class.__name__)

    def test_send_action_goes_through_lifecycle(self):
        quotation = self.make_quotation(valid_until=datetime.now(dt_timezone.utc) + timedelta(days=30))
        with patch.object(self.model_admin, 'message_user'):
            self.model_admin.mark_as_sent(self.request, Quotation.objects.filter(pk=quotation.pk))

        quotation.refresh_from_db()
        self.assertEqual(quotation.status, 'sent')
        self.assertEqual(quotation.sent_by, self.staff)
        self.assertEqual(self.activities('quotation_sent').count(), 1)
