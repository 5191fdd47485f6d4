from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command

from core.policies import can
from core.roles import ADMIN, LIBRARIAN, MEMBER, SUPER_ADMIN, role_of
from members.models import Member, Staff


def test_seed_roles_command(db):
    out = StringIO()

    call_command('seed_roles', stdout=out)

    assert 'Seeded 4 roles' in out.getvalue()
    assert Group.objects.count() == 4
    assert not get_user_model().objects.exists()


def test_seed_roles_with_demo_users(db):
    out = StringIO()

    call_command('seed_roles', '--with-demo-users', stdout=out)
    call_command('seed_roles', '--with-demo-users', stdout=out)

    User = get_user_model()
    assert 'Created 8 demo user(s)' in out.getvalue()
    assert 'Created 0 demo user(s)' in out.getvalue()
    assert Staff.objects.count() == 4
    assert Member.objects.count() == 4
    assert role_of(User.objects.get(username='superadmin')) == SUPER_ADMIN
    assert role_of(User.objects.get(username='admin')) == ADMIN
    assert role_of(User.objects.get(username='sarah')) == LIBRARIAN
    assert role_of(User.objects.get(username='john.smith')) == MEMBER
    assert Member.objects.get(user__username='maria.garcia').max_books_allowed == 10

    sarah = User.objects.get(username='sarah')
    assert sarah.check_password('password')
    assert can(sarah, 'create_loans')
    assert not can(sarah, 'delete_users')
