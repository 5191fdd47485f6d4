import re
from datetime import date, timedelta

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from books.models import Book, BookCopy
from circulation import services
from members import services as member_services
from members.models import Staff, _months_between

from .conftest import JAN_1


def test_copy_gets_barcode_and_call_number(copy, second_copy):
    assert re.fullmatch(r'[0-9a-f-]{36}', copy.barcode)
    assert copy.barcode != second_copy.barcode
    assert copy.call_number == 'FIC-ORW-001'
    assert second_copy.call_number == 'FIC-ORW-002'


def test_call_number_without_category(other_book):
    copy = BookCopy.objects.create(book=other_book)

    assert copy.call_number == 'GEN-HUX-001'


def test_barcode_cannot_change(copy):
    original = copy.barcode
    copy.barcode = 'something-else'

    with pytest.raises(ValidationError):
        copy.save()

    copy.refresh_from_db()
    assert copy.barcode == original


def test_barcode_survives_other_edits(copy):
    original = copy.barcode
    copy = BookCopy.objects.get(pk=copy.pk)
    copy.condition = 'fair'
    copy.save()

    assert BookCopy.objects.get(pk=copy.pk).barcode == original


def test_book_availability(book, copy, second_copy, borrower):
    assert book.total_copies == 2
    assert book.status == 'Available'

    services.create_loan(copy, borrower)
    assert book.available_copies_count == 1
    assert book.status == '1 available'

    services.create_loan(second_copy, borrower)
    assert book.status == 'Not Available'


def test_copy_current_loan(copy, borrower):
    assert copy.current_loan is None

    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    assert copy.current_loan == loan
    services.return_loan(loan, returned_date=JAN_1 + timedelta(days=1))
    assert copy.current_loan is None


def test_member_card_number(member, other_member):
    assert re.fullmatch(r'LIB\d{6}', member.library_card_number)
    assert member.library_card_number != other_member.library_card_number


def test_member_derived_properties(member, copy, second_copy):
    today = timezone.localdate()
    member.date_of_birth = today - timedelta(days=365 * 30 + 10)
    member.emergency_contact_name = 'Jane Smith'
    member.emergency_contact_phone = '555-0100'
    member.emergency_contact_relationship = 'Sister'
    member.max_books_allowed = 2
    member.save()

    assert member.age == 30
    assert member.emergency_contact == 'Jane Smith (555-0100) - Sister'
    assert member.days_until_expiry(today) == 365
    assert not member.is_membership_expired(today)

    services.create_loan(copy, member.user, borrowed_date=JAN_1)
    assert member.remaining_books == 1
    assert member.can_borrow_more()
    assert member.overdue_loans(JAN_1 + timedelta(days=15)).count() == 1

    services.create_loan(second_copy, member.user)
    assert member.remaining_books == 0
    assert not member.can_borrow_more()


def test_member_unpaid_fines(member, copy, second_copy):
    first = services.create_loan(copy, member.user, borrowed_date=JAN_1)
    second = services.create_loan(second_copy, member.user, borrowed_date=JAN_1)
    services.return_loan(first, returned_date=JAN_1 + timedelta(days=17))
    services.return_loan(second, returned_date=JAN_1 + timedelta(days=19))
    services.collect_fine(second)

    assert member.total_unpaid_fines == 3


def test_member_without_emergency_contact(member):
    assert member.emergency_contact is None
    assert member.age is None


def test_staff_employee_id_and_schedule(roles):
    staff = member_services.create_staff(
        {'username': 'michael', 'first_name': 'Michael', 'last_name': 'Chen', 'email': 'michael@library.com'},
        {'work_hours': {'monday': '9:00-17:00', 'saturday': '10:00-14:00'}},
    )

    assert re.fullmatch(r'EMP\d{5}', staff.employee_id)
    assert staff.works_on('Monday')
    assert staff.work_hours_for('saturday') == '10:00-14:00'
    assert not staff.works_on('sunday')
    assert staff.work_hours_for('sunday') is None


def test_staff_service_duration(db):
    staff = Staff(hire_date=timezone.localdate())

    assert staff.months_of_service == 0
    assert staff.service_duration == '0 months'


def test_months_between():
    assert _months_between(date(2020, 1, 15), date(2021, 3, 14)) == 13
    assert _months_between(date(2020, 1, 15), date(2021, 3, 15)) == 14
    assert _months_between(date(2020, 1, 15), date(2019, 3, 15)) == 0


def test_book_str(book):
    assert str(book) == 'Nineteen Eighty-Four (George Orwell)'
    assert Book.objects.get(isbn='9780451524935') == book
