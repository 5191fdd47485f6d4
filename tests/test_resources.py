import tablib
from django.contrib.auth import get_user_model

from books.models import Book, Category, Genre, Publisher
from books.resources import BookResource
from core.roles import MEMBER, role_of
from members.models import Member
from members.resources import MemberResource

BOOK_HEADERS = [
    'isbn', 'title', 'author', 'category', 'publisher', 'genres',
    'published_date', 'pages', 'language', 'format', 'price', 'description',
]


def test_book_import_creates_reference_data(db):
    dataset = tablib.Dataset(headers=BOOK_HEADERS)
    dataset.append([
        '9780141036144', 'Animal Farm', 'George Orwell', 'Fiction', 'Penguin', 'Classic|Satire',
        '', '112', 'English', 'paperback', '9.99', '',
    ])

    result = BookResource().import_data(dataset, dry_run=False)

    assert not result.has_errors()
    assert not result.has_validation_errors()
    book = Book.objects.get(isbn='9780141036144')
    assert book.category == Category.objects.get(name='Fiction')
    assert book.publisher == Publisher.objects.get(name='Penguin')
    assert set(book.genres.values_list('name', flat=True)) == {'Classic', 'Satire'}
    assert Genre.objects.count() == 2


def test_book_import_updates_by_isbn(book):
    dataset = tablib.Dataset(headers=BOOK_HEADERS)
    dataset.append([
        book.isbn, '1984', 'George Orwell', 'Fiction', '', '',
        '', '', 'English', 'paperback', '', '',
    ])

    result = BookResource().import_data(dataset, dry_run=False)

    assert not result.has_errors()
    assert Book.objects.count() == 1
    book.refresh_from_db()
    assert book.title == '1984'


def test_book_export(book):
    dataset = BookResource().export()

    assert dataset.headers[:3] == ['isbn', 'title', 'author']
    assert dataset.dict[0]['category'] == 'Fiction'


def test_member_import_creates_accounts(roles):
    dataset = tablib.Dataset(headers=[
        'username', 'name', 'email', 'library_card_number', 'phone', 'status', 'membership_type',
        'membership_start_date', 'membership_expiry_date', 'date_of_birth', 'gender', 'address',
        'max_books_allowed', 'max_days_allowed',
    ])
    dataset.append([
        'linda.park', 'Linda Park', 'linda@example.com', '', '555-0142', 'active', 'premium',
        '2026-01-01', '2027-01-01', '', '', '', '10', '21',
    ])

    result = MemberResource().import_data(dataset, dry_run=False)

    assert not result.has_errors()
    assert not result.has_validation_errors()
    user = get_user_model().objects.get(username='linda.park')
    assert user.first_name == 'Linda'
    assert user.email == 'linda@example.com'
    assert not user.has_usable_password()
    assert role_of(user) == MEMBER
    member = Member.objects.get(user=user)
    assert member.membership_type == 'premium'
    assert member.max_books_allowed == 10
    assert member.library_card_number.startswith('LIB')


def test_member_export(member):
    row = MemberResource().export().dict[0]

    assert row['username'] == 'john.smith'
    assert row['name'] == 'John Smith'
    assert row['email'] == 'john@example.com'
