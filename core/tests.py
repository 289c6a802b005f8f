# core/tests.py - Reference numbers, roles and API error mapping

from datetime import datetime, timezone as dt_timezone
from io import StringIO

from django.contrib.auth.models import AnonymousUser, User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError
from django.test import TestCase, RequestFactory

from .api import workflow_exception_handler
from .auth import AuthContext
from .exceptions import (
    ConflictError, NotFoundError, PreconditionFailedError, ValidationError, from_django_validation
)
from .models import StaffProfile, ReferenceCounter
from .permissions import RoleWritePermission
from .sequencer import IdentitySequencer, REFERENCE_PATTERN, create_with_reference


OCTOBER = datetime(2025, 10, 15, 6, 30, tzinfo=dt_timezone.utc)
NOVEMBER = datetime(2025, 11, 15, 6, 30, tzinfo=dt_timezone.utc)


class IdentitySequencerTest(TestCase):
    """Reference numbers are {prefix}{YY}{MM}{NNNN} and never repeat"""

    def setUp(self):
        self.sequencer = IdentitySequencer(clock=lambda: OCTOBER)

    def test_first_number_of_the_month(self):
        self.assertEqual(self.sequencer.next('ENQ'), 'ENQ25100001')
        self.assertEqual(self.sequencer.next('ENQ'), 'ENQ25100002')

    def test_numbers_are_unique_and_well_formed(self):
        numbers = [self.sequencer.next('QUO') for _ in range(25)]
        self.assertEqual(len(set(numbers)), 25)
        for number in numbers:
            self.assertRegex(number, REFERENCE_PATTERN)
        self.assertEqual(numbers[-1], 'QUO25100025')

    def test_prefixes_are_counted_separately(self):
        self.sequencer.next('ENQ')
        self.sequencer.next('ENQ')
        self.assertEqual(self.sequencer.next('QUO'), 'QUO25100001')

    def test_sequence_restarts_each_month(self):
        self.sequencer.next('ENQ')
        self.sequencer.next('ENQ')
        self.assertEqual(self.sequencer.next('ENQ', now=NOVEMBER), 'ENQ25110001')

    def test_counter_is_seeded_from_existing_numbers(self):
        from enquiries.models import Enquiry

        Enquiry.objects.create(
            enquiry_no='ENQ25100041',
            customer_name='Asha Rao',
            company='Rao Mills',
            email='asha@raomills.in',
            phone='+919812345678',
            message='Existing record',
        )
        number = self.sequencer.next('ENQ', model=Enquiry, field='enquiry_no')
        self.assertEqual(number, 'ENQ25100042')

    def test_exhausted_sequence_raises_conflict(self):
        ReferenceCounter.objects.create(key='ENQ2510', value=9999)
        with self.assertRaises(ConflictError):
            self.sequencer.next('ENQ')


class CreateWithReferenceTest(TestCase):

    def test_retries_then_gives_up_with_conflict(self):
        attempts = []

        def build(reference):
            attempts.append(reference)
            raise IntegrityError('duplicate key')

        with self.assertRaises(ConflictError) as ctx:
            create_with_reference(IdentitySequencer(clock=lambda: OCTOBER), 'ENQ', None, None, build)

        self.assertEqual(ctx.exception.code, 'duplicate_reference')
        self.assertEqual(len(attempts), 3)
        self.assertEqual(len(set(attempts)), 3)

    def test_returns_built_record(self):
        result = create_with_reference(
            IdentitySequencer(clock=lambda: OCTOBER), 'QUO', None, None, lambda ref: ref.lower()
        )
        self.assertEqual(result, 'quo25100001')


class StaffProfileTest(TestCase):

    def setUp(self):
        self.admin = User.objects.create_superuser('owner', 'owner@texhub.in', 'AdminPass123!')
        self.editor = User.objects.create_user('editor', 'editor@texhub.in', 'EditorPass123!')

    def test_profile_created_for_every_user(self):
        self.assertEqual(self.admin.staff_profile.role, StaffProfile.ROLE_ADMIN)
        self.assertEqual(self.editor.staff_profile.role, StaffProfile.ROLE_VIEWER)

    def test_cannot_demote_last_admin(self):
        with self.assertRaises(PreconditionFailedError):
            self.admin.staff_profile.set_role(StaffProfile.ROLE_EDITOR)
        self.admin.staff_profile.refresh_from_db()
        self.assertEqual(self.admin.staff_profile.role, StaffProfile.ROLE_ADMIN)

    def test_can_demote_admin_when_another_exists(self):
        self.editor.staff_profile.set_role(StaffProfile.ROLE_ADMIN)
        self.admin.staff_profile.set_role(StaffProfile.ROLE_VIEWER)
        self.assertEqual(StaffProfile.objects.get(user=self.admin).role, StaffProfile.ROLE_VIEWER)

    def test_unknown_role_rejected(self):
        with self.assertRaises(ValidationError):
            self.editor.staff_profile.set_role('owner')

    def test_assign_roles_command(self):
        out = StringIO()
        call_command('assign_roles', 'editor', 'editor', stdout=out)
        self.assertIn('Assigned role editor to editor', out.getvalue())
        self.assertEqual(StaffProfile.objects.get(user=self.editor).role, StaffProfile.ROLE_EDITOR)

    def test_assign_roles_command_refuses_last_admin(self):
        with self.assertRaises(CommandError):
            call_command('assign_roles', 'owner', 'viewer', stdout=StringIO())


class AuthContextTest(TestCase):

    def setUp(self):
        self.factory = RequestFactory()
        self.viewer = User.objects.create_user('viewer', 'viewer@texhub.in', 'ViewerPass123!')
        self.editor = User.objects.create_user('editor', 'editor@texhub.in', 'EditorPass123!')
        self.editor.staff_profile.set_role(StaffProfile.ROLE_EDITOR)

    def test_role_predicates(self):
        viewer = AuthContext.from_user(self.viewer)
        self.assertTrue(viewer.can_view)
        self.assertFalse(viewer.can_edit)

        editor = AuthContext.from_user(User.objects.get(pk=self.editor.pk))
        self.assertTrue(editor.can_edit)
        self.assertFalse(editor.is_admin)
        self.assertEqual(editor.caller_id, self.editor.pk)

    def test_anonymous_has_no_role(self):
        context = AuthContext.from_user(AnonymousUser())
        self.assertIsNone(context.user)
        self.assertFalse(context.can_view)

    def test_write_permission_requires_editor(self):
        permission = RoleWritePermission()

        request = self.factory.post('/api/enquiries/1/notes/')
        request.user = self.viewer
        self.assertFalse(permission.has_permission(request, None))

        request = self.factory.get('/api/enquiries/')
        request.user = self.viewer
        self.assertTrue(permission.has_permission(request, None))

        request = self.factory.patch('/api/enquiries/1/')
        request.user = User.objects.get(pk=self.editor.pk)
        self.assertTrue(permission.has_permission(request, None))

        request = self.factory.get('/api/enquiries/')
        request.user = AnonymousUser()
        self.assertFalse(permission.has_permission(request, None))


class ExceptionHandlerTest(TestCase):

    def test_workflow_errors_map_to_status_and_shape(self):
        response = workflow_exception_handler(NotFoundError('Enquiry not found.'), {})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'success': False, 'message': 'Enquiry not found.', 'code': 'not_found'})

        response = workflow_exception_handler(
            ValidationError('Bad unit', details={'unit': ['nope']}), {}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['errors'], {'unit': ['nope']})

        response = workflow_exception_handler(PreconditionFailedError('Only draft quotations can be sent.'), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'precondition_failed')

    def test_django_validation_errors_are_translated(self):
        from django.core.exceptions import ValidationError as DjangoValidationError

        error = from_django_validation(DjangoValidationError({'email': ['Enter a valid email address.']}))
        self.assertIsInstance(error, ValidationError)
        self.assertEqual(error.details, {'email': ['Enter a valid email address.']})
