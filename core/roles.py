import logging

from django.contrib.auth.models import Group, Permission
from django.db import transaction

from .policies import CAPABILITIES, permission_for

logger = logging.getLogger(__name__)

SUPER_ADMIN = 'super-admin'
ADMIN = 'admin'
LIBRARIAN = 'librarian'
MEMBER = 'member'

ROLE_CHOICES = [
    (SUPER_ADMIN, 'Super Admin'),
    (ADMIN, 'Admin'),
    (LIBRARIAN, 'Librarian'),
    (MEMBER, 'Member'),
]
STAFF_ROLES = (SUPER_ADMIN, ADMIN, LIBRARIAN)

ROLE_CAPABILITIES = {
    # Full access
    SUPER_ADMIN: list(CAPABILITIES),

    # Everything except system settings
    ADMIN: [
        'view_users', 'create_users', 'edit_users', 'delete_users',
        'view_books', 'create_books', 'edit_books', 'delete_books',
        'view_book_copies', 'create_book_copies', 'edit_book_copies', 'delete_book_copies',
        'view_loans', 'create_loans', 'return_loans', 'delete_loans',
        'view_categories', 'create_categories', 'edit_categories', 'delete_categories',
        'view_genres', 'create_genres', 'edit_genres', 'delete_genres',
        'view_publishers', 'create_publishers', 'edit_publishers', 'delete_publishers',
        'view_fines', 'waive_fines', 'collect_fines',
        'view_reports', 'export_reports',
    ],

    # Book and loan management
    LIBRARIAN: [
        'view_users',
        'view_books', 'create_books', 'edit_books',
        'view_book_copies', 'create_book_copies', 'edit_book_copies',
        'view_loans', 'create_loans', 'return_loans',
        'view_categories', 'create_categories',
        'view_genres', 'create_genres',
        'view_publishers', 'create_publishers',
        'view_fines', 'collect_fines',
        'view_reports',
    ],

    # Borrowers
    MEMBER: [
        'view_books',
        'view_book_copies',
    ],
}


def _permission(capability):
    app_label, codename = permission_for(capability).split('.')
    return Permission.objects.get(content_type__app_label=app_label, codename=codename)


@transaction.atomic
def seed_roles():
    """Create or refresh every role group. Safe to run repeatedly."""
    groups = {}
    for role, names in ROLE_CAPABILITIES.items():
        group, created = Group.objects.get_or_create(name=role)
        group.permissions.set({_permission(name) for name in names})
        groups[role] = group
        logger.info("Role %s %s with %s capabilities", role, 'created' if created else 'updated', len(names))
    return groups


def get_role_group(role):
    if role not in ROLE_CAPABILITIES:
        raise ValueError(f"Unknown role: {role}")
    try:
        return Group.objects.get(name=role)
    except Group.DoesNotExist:
        return seed_roles()[role]


def assign_role(user, role):
    """Give ``user`` exactly one role, replacing any other role group."""
    group = get_role_group(role)
    user.groups.remove(*Group.objects.filter(name__in=ROLE_CAPABILITIES).exclude(pk=group.pk))
    user.groups.add(group)
    user.is_staff = role in (SUPER_ADMIN, ADMIN)
    user.save(update_fields=['is_staff'])
    return group


def role_of(user):
    names = set(user.groups.values_list('name', flat=True))
    for role, _ in ROLE_CHOICES:
        if role in names:
            return role
    return None
