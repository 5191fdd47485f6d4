"""Capability checks shared by views, templates and the admin.

A capability is a library-level action such as ``create_loans``. Each one maps
to a Django model permission, and roles grant those permissions through
groups (see ``core.roles``).
"""
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied

CAPABILITIES = {
    # User management
    'view_users': 'auth.view_user',
    'create_users': 'auth.add_user',
    'edit_users': 'auth.change_user',
    'delete_users': 'auth.delete_user',

    # Books
    'view_books': 'books.view_book',
    'create_books': 'books.add_book',
    'edit_books': 'books.change_book',
    'delete_books': 'books.delete_book',

    # Book copies
    'view_book_copies': 'books.view_bookcopy',
    'create_book_copies': 'books.add_bookcopy',
    'edit_book_copies': 'books.change_bookcopy',
    'delete_book_copies': 'books.delete_bookcopy',

    # Loans
    'view_loans': 'circulation.view_loan',
    'create_loans': 'circulation.add_loan',
    'return_loans': 'circulation.return_loan',
    'delete_loans': 'circulation.delete_loan',

    # Reference data
    'view_categories': 'books.view_category',
    'create_categories': 'books.add_category',
    'edit_categories': 'books.change_category',
    'delete_categories': 'books.delete_category',
    'view_genres': 'books.view_genre',
    'create_genres': 'books.add_genre',
    'edit_genres': 'books.change_genre',
    'delete_genres': 'books.delete_genre',
    'view_publishers': 'books.view_publisher',
    'create_publishers': 'books.add_publisher',
    'edit_publishers': 'books.change_publisher',
    'delete_publishers': 'books.delete_publisher',

    # Fines
    'view_fines': 'circulation.view_fines',
    'waive_fines': 'circulation.waive_fine',
    'collect_fines': 'circulation.collect_fine',

    # Reports
    'view_reports': 'circulation.view_reports',
    'export_reports': 'circulation.export_reports',

    # System
    'manage_settings': 'auth.change_permission',
    'manage_roles': 'auth.change_group',
    'manage_permissions': 'auth.change_permission',
}


def permission_for(capability):
    try:
        return CAPABILITIES[capability]
    except KeyError:
        raise ValueError(f"Unknown capability: {capability}")


def can(user, capability):
    """True if ``user`` holds ``capability``. Anonymous users hold nothing."""
    permission = permission_for(capability)
    if user is None or not user.is_authenticated or not user.is_active:
        return False
    return user.has_perm(permission)


def authorize(user, capability):
    if not can(user, capability):
        raise PermissionDenied(f"You do not have permission to {capability.replace('_', ' ')}.")


def capability_required(capability):
    """View decorator: log in first, then require ``capability`` or answer 403."""
    permission_for(capability)

    def decorator(view_func):
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            authorize(request.user, capability)
            return view_func(request, *args, **kwargs)
        return login_required(_wrapped)
    return decorator


def _camel_key(capability):
    # view_book_copies -> canViewBookCopies
    return 'can' + ''.join(part.capitalize() for part in capability.split('_'))


def capabilities(user, *names):
    """Map of ``canXxx`` flags for templates; all capabilities when no names are given."""
    names = names or tuple(CAPABILITIES)
    return {_camel_key(name): can(user, name) for name in names}
