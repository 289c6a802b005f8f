"""
Caller identity for the lifecycles.

The lifecycles never authenticate anyone; they only need to know who is acting
(for attribution fields such as performed_by or sent_by) and, at the API
boundary, which role that caller holds.
"""
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth.models import User

from .models import StaffProfile


ROLE_RANK = {
    StaffProfile.ROLE_VIEWER: 1,
    StaffProfile.ROLE_EDITOR: 2,
    StaffProfile.ROLE_ADMIN: 3,
}


@dataclass(frozen=True)
class AuthContext:
    user: Optional[User]
    role: str = StaffProfile.ROLE_VIEWER

    @classmethod
    def from_user(cls, user):
        if user is None or not user.is_authenticated:
            return cls(user=None, role='')
        profile = getattr(user, 'staff_profile', None)
        if profile is not None:
            role = profile.role
        elif user.is_superuser:
            role = StaffProfile.ROLE_ADMIN
        else:
            role = StaffProfile.ROLE_VIEWER
        return cls(user=user, role=role)

    @property
    def caller_id(self):
        return self.user.pk if self.user else None

    def has_role(self, minimum):
        return ROLE_RANK.get(self.role, 0) >= ROLE_RANK[minimum]

    @property
    def can_view(self):
        return self.has_role(StaffProfile.ROLE_VIEWER)

    @property
    def can_edit(self):
        return self.has_role(StaffProfile.ROLE_EDITOR)

    @property
    def is_admin(self):
        return self.has_role(StaffProfile.ROLE_ADMIN)
