from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth.models import User
import logging
from .models import StaffProfile

logger = logging.getLogger(__name__)

# Signal to create a staff profile when a new user is created
@receiver(post_save, sender=User)
def ensure_staff_profile(sender, instance, created, **kwargs):
    """Ensure staff profile exists - safe for multiple calls"""
    role = StaffProfile.ROLE_ADMIN if instance.is_superuser else StaffProfile.ROLE_VIEWER
    profile, profile_created = StaffProfile.objects.get_or_create(
        user=instance,
        defaults={'role': role},
    )
    if profile_created:
        logger.info(f"Created {profile.role} profile for user: {instance.username}")
