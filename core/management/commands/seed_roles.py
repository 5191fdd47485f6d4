from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.roles import ADMIN, LIBRARIAN, ROLE_CAPABILITIES, SUPER_ADMIN, seed_roles
from members import services

WEEKDAY_HOURS = {day: '9:00-17:00' for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')}

DEMO_STAFF = [
    ('superadmin', 'Super', 'Admin', SUPER_ADMIN, 'Executive', 'System Administrator', 5 * 365),
    ('admin', 'Admin', 'User', ADMIN, 'Administration', 'Library Administrator', 3 * 365),
    ('sarah', 'Sarah', 'Johnson', LIBRARIAN, 'Circulation', 'Senior Librarian', 2 * 365),
    ('michael', 'Michael', 'Chen', LIBRARIAN, 'Reference', 'Reference Librarian', 365),
]

DEMO_MEMBERS = [
    ('john.smith', 'John', 'Smith', 'standard'),
    ('maria.garcia', 'Maria', 'Garcia', 'premium'),
    ('david.wilson', 'David', 'Wilson', 'student'),
    ('patricia.brown', 'Patricia', 'Brown', 'senior'),
]

DEMO_PASSWORD = 'password'


class Command(BaseCommand):
    help = "Create the library roles (super-admin, admin, librarian, member) and their permissions."

    def add_arguments(self, parser):
        parser.add_argument(
            '--with-demo-users',
            action='store_true',
            help=f"Also create demo staff and member accounts (password '{DEMO_PASSWORD}')",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        seed_roles()
        self.stdout.write(self.style.SUCCESS(f"Seeded {len(ROLE_CAPABILITIES)} roles."))

        if options['with_demo_users']:
            created = self.create_demo_users()
            self.stdout.write(self.style.SUCCESS(f"Created {created} demo user(s)."))
            self.stdout.write(self.style.WARNING(f"Demo accounts use the password '{DEMO_PASSWORD}'. Change it in production!"))

    def create_demo_users(self):
        User = get_user_model()
        today = timezone.localdate()
        created = 0

        for username, first, last, role, department, position, days in DEMO_STAFF:
            if User.objects.filter(username=username).exists():
                continue
            services.create_staff(
                {'username': username, 'first_name': first, 'last_name': last, 'email': f'{username}@library.com'},
                {
                    'department': department,
                    'position': position,
                    'hire_date': today - timedelta(days=days),
                    'work_hours': WEEKDAY_HOURS,
                },
                password=DEMO_PASSWORD,
                role=role,
            )
            created += 1

        for username, first, last, membership_type in DEMO_MEMBERS:
            if User.objects.filter(username=username).exists():
                continue
            services.create_member(
                {'username': username, 'first_name': first, 'last_name': last, 'email': f'{username}@example.com'},
                {
                    'membership_type': membership_type,
                    'max_books_allowed': 10 if membership_type == 'premium' else 5,
                },
                password=DEMO_PASSWORD,
            )
            created += 1

        return created
