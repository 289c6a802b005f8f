# core/management/commands/assign_roles.py
from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth.models import User

from core.exceptions import WorkflowError
from core.models import StaffProfile


class Command(BaseCommand):
    help = 'Assign a dashboard role (admin, editor, viewer) to a user'

    def add_arguments(self, parser):
        parser.add_argument('username', type=str, help='Username to assign role to')
        parser.add_argument(
            'role',
            type=str,
            choices=[choice for choice, _ in StaffProfile.ROLE_CHOICES],
            help='Role name to assign',
        )

    def handle(self, *args, **options):
        username = options['username']
        role_name = options['role']

        try:
            user = User.objects.get(username=username)
        except User.DoesNotExist:
            raise CommandError(f'User {username} does not exist')

        profile, _ = StaffProfile.objects.get_or_create(user=user)
        try:
            profile.set_role(role_name)
        except WorkflowError as e:
            raise CommandError(f'Failed to assign role: {e}')

        self.stdout.write(
            self.style.SUCCESS(f'Assigned role {role_name} to {username}')
        )
