"""Role lookups and DRF permission classes shared by the API apps."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from rest_framework import permissions

from .models import Role

if TYPE_CHECKING:
    from school.domain import ClassRecord, StudentRecord

logger = logging.getLogger(__name__)


def role_of(user) -> Optional[Role]:
    """Return the school role of ``user``.

    Superusers and staff accounts without a profile are treated as admins so a
    freshly created ``createsuperuser`` account can operate the system.
    """

    if user is None or not getattr(user, "is_authenticated", False):
        return None
    profile = getattr(user, "profile", None)
    if profile is not None:
        return Role(profile.role)
    if user.is_superuser or user.is_staff:
        return Role.ADMIN
    return None


def linked_student_ids(user) -> set[int]:
    """Students a family account may see: explicit links plus children it parents."""

    profile = getattr(user, "profile", None)
    linked: set[int] = set()
    if profile is not None:
        linked.update(profile.linked_students.values_list("id", flat=True))
    if getattr(user, "pk", None) is not None:
        linked.update(user.children.values_list("id", flat=True))
    return linked


def can_manage_class(user, school_class: "ClassRecord") -> bool:
    """Admins manage every class, teachers only the classes assigned to them."""

    role = role_of(user)
    if role == Role.ADMIN:
        return True
    return role == Role.TEACHER and school_class.teacher_id == user.id


def can_view_student(user, student: "StudentRecord", school_class: "ClassRecord") -> bool:
    role = role_of(user)
    if role == Role.ADMIN:
        return True
    if role == Role.TEACHER:
        return school_class.teacher_id == user.id
    if role in (Role.STUDENT, Role.PARENT):
        return student.id in linked_student_ids(user)
    return False


class HasRole(permissions.BasePermission):
    """Allow authenticated users whose role is in ``allowed_roles``."""

    allowed_roles: tuple[Role, ...] = ()
    message = "Your role does not allow this action."

    def has_permission(self, request, view) -> bool:
        role = role_of(request.user)
        allowed = role is not None and role in self.allowed_roles
        if not allowed:
            logger.info(
                "Role check denied",
                extra={"event": "role_denied", "role": role, "view": view.__class__.__name__},
            )
        return allowed


class IsAdmin(HasRole):
    allowed_roles = (Role.ADMIN,)


class IsAdminOrTeacher(HasRole):
    allowed_roles = (Role.ADMIN, Role.TEACHER)


class IsSchoolMember(HasRole):
    allowed_roles = (Role.ADMIN, Role.TEACHER, Role.STUDENT, Role.PARENT)
