from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator


class StaffProfile(models.Model):
    """Dashboard role for a user: admin > editor > viewer"""

    ROLE_ADMIN = 'admin'
    ROLE_EDITOR = 'editor'
    ROLE_VIEWER = 'viewer'

    ROLE_CHOICES = (
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_EDITOR, 'Editor'),
        (ROLE_VIEWER, 'Viewer'),
    )

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='staff_profile')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_VIEWER, db_index=True)
    department = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['user__username']

    def __str__(self):
        return f"{self.user.username} ({self.get_role_display()})"

    def set_role(self, role):
        """
        Change the role, refusing to demote the last remaining administrator.
        """
        from .exceptions import PreconditionFailedError, ValidationError

        if role not in dict(self.ROLE_CHOICES):
            raise ValidationError(
                f"Invalid role. Must be one of: {', '.join(dict(self.ROLE_CHOICES))}"
            )
        if self.role == self.ROLE_ADMIN and role != self.ROLE_ADMIN:
            other_admins = StaffProfile.objects.filter(role=self.ROLE_ADMIN).exclude(pk=self.pk)
            if not other_admins.exists():
                raise PreconditionFailedError('Cannot change the role of the last administrator.')
        self.role = role
        self.save(update_fields=['role', 'updated_at'])
        return self


class ReferenceCounter(models.Model):
    """
    Atomic per-period counter behind reference numbers such as ENQ25100001.
    The key is the prefix plus the two-digit year and month (e.g. ENQ2510).
    """

    key = models.CharField(max_length=16, unique=True)
    value = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['key']

    def __str__(self):
        return f"{self.key}: {self.value}"
