from datetime import date

import pytest
from django.contrib.auth import get_user_model

from books.models import Book, BookCopy, Category
from core.roles import ADMIN, LIBRARIAN, assign_role, seed_roles
from members import services as member_services

PASSWORD = 'correct-horse-42'

# Loans in these tests are dated in January 2024 so due dates and fines are fixed.
JAN_1 = date(2024, 1, 1)


def make_staff(username, role):
    User = get_user_model()
    user = User.objects.create_user(username, f'{username}@library.com', PASSWORD)
    assign_role(user, role)
    # Fresh instance, so no permission cache from before the role was assigned
    return User.objects.get(pk=user.pk)


@pytest.fixture
def roles(db):
    return seed_roles()


@pytest.fixture
def librarian(roles):
    return make_staff('sarah', LIBRARIAN)


@pytest.fixture
def library_admin(roles):
    return make_staff('admin', ADMIN)


@pytest.fixture
def member(roles):
    return member_services.create_member(
        {'username': 'john.smith', 'first_name': 'John', 'last_name': 'Smith', 'email': 'john@example.com'},
        password=PASSWORD,
    )


@pytest.fixture
def borrower(member):
    return member.user


@pytest.fixture
def other_member(roles):
    return member_services.create_member(
        {'username': 'maria.garcia', 'first_name': 'Maria', 'last_name': 'Garcia', 'email': 'maria@example.com'},
        password=PASSWORD,
    )


@pytest.fixture
def book(db):
    fiction = Category.objects.create(name='Fiction')
    return Book.objects.create(title='Nineteen Eighty-Four', author='George Orwell', isbn='9780451524935', category=fiction)


@pytest.fixture
def copy(book):
    return BookCopy.objects.create(book=book)


@pytest.fixture
def second_copy(book, copy):
    return BookCopy.objects.create(book=book)


@pytest.fixture
def other_book(db):
    return Book.objects.create(title='Brave New World', author='Aldous Huxley', isbn='9780060850524')
