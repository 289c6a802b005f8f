# enquiries/tests.py - Enquiry lifecycle and API

from datetime import datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace

from django.contrib import admin
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import RequestFactory, TestCase
from rest_framework.test import APIClient

from catalog.models import Product
from core.auth import AuthContext
from core.exceptions import NotFoundError, ValidationError
from core.models import StaffProfile
from .models import Enquiry, EnquiryActivity
from .services import EnquiryLifecycle


NOW = datetime(2025, 10, 15, 6, 30, tzinfo=dt_timezone.utc)


def customer(**overrides):
    data = {
        'customer_name': 'Asha Rao',
        'company': 'Rao Mills',
        'email': 'Asha@RaoMills.in',
        'phone': '+919812345678',
        'message': 'Please quote for monthly supply.',
    }
    data.update(overrides)
    return data


class EnquiryTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.lifecycle = EnquiryLifecycle(clock=lambda: NOW)
        self.yarn = Product.objects.create(sku='YRN-30S', name='30s Combed Cotton Yarn', category='Yarn', status='active')
        self.denim = Product.objects.create(sku='DNM-10', name='10oz Denim', category='Denim', status='active')
        self.staff = User.objects.create_user('priya', 'priya@texhub.in', 'StaffPass123!')
        self.staff.staff_profile.set_role(StaffProfile.ROLE_EDITOR)
        self.actor = AuthContext(user=self.staff, role=StaffProfile.ROLE_EDITOR)

    def make_enquiry(self, **overrides):
        return self.lifecycle.create(
            customer=customer(**overrides),
            products=[{'product_id': self.yarn.pk, 'quantity': 500, 'unit': 'kg'}],
        )


class EnquiryCreationTest(EnquiryTestCase):

    def test_create_assigns_number_and_snapshots_products(self):
        enquiry = self.lifecycle.create(
            customer=customer(),
            products=[
                {'product_id': self.yarn.pk, 'quantity': 500, 'unit': 'kg'},
                {'product_id': self.denim.pk, 'quantity': 20, 'notes': 'Indigo shade'},
            ],
        )
        self.assertEqual(enquiry.enquiry_no, 'ENQ25100001')
        self.assertEqual(enquiry.status, 'new')
        self.assertEqual(enquiry.email, 'asha@raomills.in')
        self.assertEqual(enquiry.created_at, NOW)

        lines = list(enquiry.products.all())
        self.assertEqual([line.product_name for line in lines], ['30s Combed Cotton Yarn', '10oz Denim'])
        self.assertEqual(lines[1].unit, '')
        self.assertEqual(enquiry.total_quantity, 520)

    def test_numbers_increase(self):
        first = self.make_enquiry()
        second = self.make_enquiry()
        self.assertEqual(first.enquiry_no, 'ENQ25100001')
        self.assertEqual(second.enquiry_no, 'ENQ25100002')

    def test_products_required_for_public_submission(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.create(customer=customer(), products=[])
        self.assertEqual(Enquiry.objects.count(), 0)

    def test_missing_customer_field_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.create(
                customer=customer(company=''),
                products=[{'product_id': self.yarn.pk, 'quantity': 1}],
            )
        self.assertIn('company', ctx.exception.details)

    def test_inactive_or_unknown_product_not_found(self):
        self.denim.status = 'discontinued'
        self.denim.save()
        with self.assertRaises(NotFoundError):
            self.lifecycle.create(customer=customer(), products=[{'product_id': self.denim.pk, 'quantity': 1}])
        with self.assertRaises(NotFoundError):
            self.lifecycle.create(customer=customer(), products=[{'product_id': 987654, 'quantity': 1}])

    def test_unit_checked_against_category(self):
        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.create(
                customer=customer(),
                products=[{'product_id': self.yarn.pk, 'quantity': 5, 'unit': 'yards'}],
            )
        self.assertIn('kg, cones', ctx.exception.message)

    def test_zero_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.create(customer=customer(), products=[{'product_id': self.yarn.pk, 'quantity': 0}])

    def test_unknown_source_rejected(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.create(
                customer=customer(),
                products=[{'product_id': self.yarn.pk, 'quantity': 1}],
                source='fax',
            )

    def test_contact_form_has_no_products(self):
        enquiry = self.lifecycle.submit_contact_form(
            'Ravi', 'ravi@example.com', 'Dealership', 'Do you supply in Surat?'
        )
        self.assertEqual(enquiry.source, 'contact_form')
        self.assertEqual(enquiry.company, 'N/A')
        self.assertEqual(enquiry.phone, 'N/A')
        self.assertEqual(enquiry.message, 'Subject: Dealership\n\nDo you supply in Surat?')
        self.assertEqual(enquiry.products.count(), 0)

    def test_contact_form_requires_all_fields(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.submit_contact_form('Ravi', 'ravi@example.com', '', 'Hello')


class EnquiryWorkflowTest(EnquiryTestCase):

    def test_assign_moves_new_to_in_review(self):
        enquiry = self.make_enquiry()
        self.lifecycle.assign(enquiry, self.staff, self.actor)
        enquiry.refresh_from_db()
        self.assertEqual(enquiry.status, 'in_review')
        self.assertEqual(enquiry.assigned_to, self.staff)

    def test_assign_keeps_later_status(self):
        enquiry = self.make_enquiry()
        self.lifecycle.set_status(enquiry, 'quoted', self.actor)
        self.lifecycle.assign(enquiry, self.staff, self.actor)
        enquiry.refresh_from_db()
        self.assertEqual(enquiry.status, 'quoted')

    def test_status_change_recorded_once(self):
        enquiry = self.make_enquiry()
        self.lifecycle.set_status(enquiry, 'approved', self.actor)
        self.lifecycle.set_status(enquiry, 'approved', self.actor)

        activities = EnquiryActivity.objects.filter(enquiry=enquiry, activity_type='status_updated')
        self.assertEqual(activities.count(), 1)
        activity = activities.get()
        self.assertEqual((activity.old_status, activity.new_status), ('new', 'approved'))
        self.assertEqual(activity.performed_by, self.staff)
        self.assertEqual(activity.performed_at, NOW)

    def test_unknown_status_rejected(self):
        enquiry = self.make_enquiry()
        with self.assertRaises(ValidationError):
            self.lifecycle.set_status(enquiry, 'archived', self.actor)
        with self.assertRaises(ValidationError):
            self.lifecycle.set_priority(enquiry, 'critical')

    def test_update_applies_patch(self):
        enquiry = self.make_enquiry()
        follow_up = NOW + timedelta(days=2)
        self.lifecycle.update(
            enquiry, self.actor, assigned_to=self.staff, priority='high',
            follow_up_date=follow_up, internal_note='Call purchase head',
        )
        enquiry.refresh_from_db()
        self.assertEqual(enquiry.status, 'in_review')
        self.assertEqual(enquiry.priority, 'high')
        self.assertEqual(enquiry.follow_up_date, follow_up)
        self.assertEqual(enquiry.internal_notes.get().text, 'Call purchase head')

    def test_notes_and_communications_append(self):
        enquiry = self.make_enquiry()
        self.lifecycle.add_internal_note(enquiry, 'First', self.staff)
        self.lifecycle.add_internal_note(enquiry, 'Second', self.actor)
        self.assertEqual([n.text for n in enquiry.internal_notes.all()], ['First', 'Second'])

        with self.assertRaises(ValidationError):
            self.lifecycle.add_internal_note(enquiry, '   ', self.staff)

        communication = self.lifecycle.add_communication(
            enquiry, 'phone', 'Price check', 'Asked for 40s count too', 'inbound', self.staff
        )
        self.assertEqual(communication.communicated_at, NOW)
        with self.assertRaises(ValidationError):
            self.lifecycle.add_communication(enquiry, 'fax', 'x', 'y', 'inbound', self.staff)
        with self.assertRaises(ValidationError):
            self.lifecycle.add_communication(enquiry, 'email', 'x', 'y', 'sideways', self.staff)

    def test_overdue(self):
        enquiry = self.make_enquiry()
        self.lifecycle.assign(enquiry, self.staff, self.actor)
        self.lifecycle.set_follow_up(enquiry, NOW - timedelta(hours=1))

        self.assertTrue(enquiry.is_overdue(NOW))
        self.assertEqual(list(self.lifecycle.overdue(NOW)), [enquiry])

        self.lifecycle.set_status(enquiry, 'quoted', self.actor)
        self.assertFalse(enquiry.is_overdue(NOW))
        self.assertEqual(self.lifecycle.overdue(NOW).count(), 0)

    def test_public_status_requires_matching_email(self):
        enquiry = self.make_enquiry()
        result = self.lifecycle.public_status(enquiry.enquiry_no, 'ASHA@raomills.in')
        self.assertEqual(result['status'], 'new')
        self.assertEqual(result['total_quantity'], 500)

        with self.assertRaises(NotFoundError):
            self.lifecycle.public_status(enquiry.enquiry_no, 'someone@else.com')

    def test_stats(self):
        first = self.make_enquiry()
        self.make_enquiry()
        self.lifecycle.assign(first, self.staff, self.actor)

        stats = self.lifecycle.stats(NOW)
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['by_status'], {'in_review': 1, 'new': 1})
        self.assertEqual(stats['top_assignees'][0]['username'], 'priya')

    def test_by_status(self):
        first = self.make_enquiry()
        second = self.make_enquiry()
        self.lifecycle.assign(first, self.staff, self.actor)

        self.assertEqual(list(self.lifecycle.by_status('new')), [second])
        self.assertEqual(list(self.lifecycle.by_status('in_review')), [first])
        with self.assertRaises(ValidationError):
            self.lifecycle.by_status('lost')

    def test_bulk_update_records_each_status_change(self):
        first = self.make_enquiry()
        second = self.make_enquiry()
        already_rejected = self.make_enquiry()
        self.lifecycle.set_status(already_rejected, 'rejected', self.actor)

        result = self.lifecycle.bulk_update(
            [first.pk, second.pk, already_rejected.pk, 987654], self.actor, status='rejected', priority=None
        )
        self.assertEqual(result, {'matched': 3, 'modified': 2})
        self.assertEqual(Enquiry.objects.filter(status='rejected').count(), 3)
        self.assertEqual(
            EnquiryActivity.objects.filter(activity_type='status_updated', new_status='rejected').count(), 3
        )

    def test_bulk_update_requires_ids_and_changes(self):
        enquiry = self.make_enquiry()
        with self.assertRaises(ValidationError):
            self.lifecycle.bulk_update([], self.actor, status='rejected')
        with self.assertRaises(ValidationError):
            self.lifecycle.bulk_update([enquiry.pk], self.actor)
        with self.assertRaises(ValidationError):
            self.lifecycle.bulk_update([enquiry.pk], self.actor, status='archived')
        enquiry.refresh_from_db()
        self.assertEqual(enquiry.status, 'new')


class EnquiryApiTest(EnquiryTestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_public_submission(self):
        response = self.client.post('/api/public/enquiries/', {
            **customer(),
            'products': [{'product_id': self.yarn.pk, 'quantity': 100, 'unit': 'cones'}],
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data['success'])
        self.assertRegex(response.data['data']['enquiry_no'], r'^ENQ\d{8}$')

    def test_public_submission_invalid_unit(self):
        response = self.client.post('/api/public/enquiries/', {
            **customer(),
            'products': [{'product_id': self.yarn.pk, 'quantity': 100, 'unit': 'm'}],
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['code'], 'invalid_unit')

    def test_public_status_lookup(self):
        enquiry = self.make_enquiry()
        response = self.client.get(
            f'/api/public/enquiries/{enquiry.enquiry_no}/status/', {'email': 'asha@raomills.in'}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['enquiry_no'], enquiry.enquiry_no)

        response = self.client.get(f'/api/public/enquiries/{enquiry.enquiry_no}/status/', {'email': 'x@y.com'})
        self.assertEqual(response.status_code, 404)

    def test_contact_form(self):
        response = self.client.post('/api/public/contact/', {
            'name': 'Ravi', 'email': 'ravi@example.com', 'subject': 'Hello', 'message': 'Call me',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Enquiry.objects.get().source, 'contact_form')

    def test_dashboard_requires_login(self):
        response = self.client.get('/api/enquiries/')
        self.assertIn(response.status_code, (401, 403))

    def test_viewer_can_read_but_not_write(self):
        enquiry = self.make_enquiry()
        viewer = User.objects.create_user('viewer', 'viewer@texhub.in', 'ViewerPass123!')
        self.client.force_authenticate(viewer)

        self.assertEqual(self.client.get('/api/enquiries/').status_code, 200)
        response = self.client.patch(f'/api/enquiries/{enquiry.pk}/', {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_editor_patch_and_notes(self):
        enquiry = self.make_enquiry()
        self.client.force_authenticate(self.staff)

        response = self.client.patch(
            f'/api/enquiries/{enquiry.pk}/', {'assigned_to': self.staff.pk, 'priority': 'urgent'}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], 'in_review')

        response = self.client.post(f'/api/enquiries/{enquiry.pk}/notes/', {'text': 'Sample sent'}, format='json')
        self.assertEqual(response.status_code, 201)

        response = self.client.post(f'/api/enquiries/{enquiry.pk}/communications/', {
            'channel': 'email', 'subject': 'Samples', 'body': 'Dispatched by courier', 'direction': 'outbound',
        }, format='json')
        self.assertEqual(response.status_code, 201)

        response = self.client.get('/api/enquiries/stats/')
        self.assertEqual(response.data['data']['total'], 1)

    def test_bulk_update(self):
        first = self.make_enquiry()
        second = self.make_enquiry()
        self.client.force_authenticate(self.staff)

        response = self.client.patch('/api/enquiries/bulk/', {
            'enquiry_ids': [first.pk, second.pk],
            'update_data': {'status': 'in_review', 'priority': 'high'},
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data'], {'matched': 2, 'modified': 2})
        self.assertEqual(Enquiry.objects.filter(status='in_review', priority='high').count(), 2)

        response = self.client.patch('/api/enquiries/bulk/', {
            'enquiry_ids': [first.pk], 'update_data': {},
        }, format='json')
        self.assertEqual(response.status_code, 400)

    def test_viewer_cannot_bulk_update(self):
        enquiry = self.make_enquiry()
        viewer = User.objects.create_user('viewer', 'viewer@texhub.in', 'ViewerPass123!')
        self.client.force_authenticate(viewer)
        response = self.client.patch('/api/enquiries/bulk/', {
            'enquiry_ids': [enquiry.pk], 'update_data': {'status': 'rejected'},
        }, format='json')
        self.assertEqual(response.status_code, 403)


class EnquiryAdminTest(EnquiryTestCase):

    def setUp(self):
        super().setUp()
        self.request = RequestFactory().post('/admin/enquiries/enquiry/')
        self.request.user = self.staff
        self.model_admin = admin.site._registry[Enquiry]

    def test_history_inlines_are_read_only(self):
        enquiry = self.make_enquiry()
        for inline_class in self.model_admin.inlines:
            inline = inline_class(Enquiry, admin.site)
            self.assertFalse(inline.can_delete, inline_class.__name__)
            self.assertFalse(inline.has_add_permission(self.request, enquiry), inline_class.__name__)
            self.assertEqual(set(inline.readonly_fields), set(inline.fields), inline_class.__name__)

    def test_status_change_is_recorded_in_activity_trail(self):
        enquiry = self.make_enquiry()
        enquiry.status = 'approved'
        form = SimpleNamespace(changed_data=['status'], initial={'status': 'new'})

        self.model_admin.save_model(self.request, enquiry, form, change=True)

        enquiry.refresh_from_db()
        self.assertEqual(enquiry.status, 'approved')
        activity = EnquiryActivity.objects.get(enquiry=enquiry, activity_type='status_updated')
        self.assertEqual((activity.old_status, activity.new_status), ('new', 'approved'))
        self.assertEqual(activity.performed_by, self.staff)
