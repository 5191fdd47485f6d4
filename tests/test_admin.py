from datetime import timedelta

import pytest
from django.contrib.auth.models import Group
from django.urls import reverse

from books.models import BookCopy
from circulation import services
from circulation.models import Loan, Reservation
from core.roles import LIBRARIAN

from .conftest import JAN_1


@pytest.mark.parametrize('url_name', [
    'admin:books_book_changelist',
    'admin:books_bookcopy_changelist',
    'admin:circulation_loan_changelist',
    'admin:circulation_reservation_changelist',
    'admin:members_member_changelist',
    'admin:members_staff_changelist',
    'admin:auth_group_changelist',
])
def test_changelists_render(admin_client, roles, url_name):
    assert admin_client.get(reverse(url_name)).status_code == 200


def test_loans_cannot_be_added_in_admin(admin_client, db):
    assert admin_client.get(reverse('admin:circulation_loan_add')).status_code == 403


def test_return_action_goes_through_the_engine(admin_client, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    admin_client.post(reverse('admin:circulation_loan_changelist'), {
        'action': 'mark_returned',
        '_selected_action': [loan.pk],
    })

    loan.refresh_from_db()
    copy.refresh_from_db()
    assert loan.status == Loan.RETURNED
    assert loan.fine_amount > 0
    assert copy.status == BookCopy.AVAILABLE


def test_loan_change_form_cannot_move_the_copy(admin_client, copy, second_copy, borrower, other_member):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = admin_client.post(reverse('admin:circulation_loan_change', args=[loan.pk]), {
        'book_copy': second_copy.pk,
        'borrower': other_member.user.pk,
        'borrowed_date': '2024-02-01',
        'due_date': '2024-02-15',
        'max_renewals': 2,
        'notes': 'Checked by desk',
    })

    assert response.status_code == 302
    loan.refresh_from_db()
    copy.refresh_from_db()
    second_copy.refresh_from_db()
    assert loan.book_copy == copy
    assert loan.borrower == borrower
    assert loan.borrowed_date == JAN_1
    assert loan.notes == 'Checked by desk'
    assert copy.status == BookCopy.BORROWED
    assert second_copy.status == BookCopy.AVAILABLE


def test_open_loan_cannot_be_deleted_in_admin(admin_client, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = admin_client.post(reverse('admin:circulation_loan_delete', args=[loan.pk]), {'post': 'yes'})

    assert response.status_code == 403
    assert Loan.objects.filter(pk=loan.pk).exists()


def test_bulk_delete_skips_open_loans(admin_client, copy, second_copy, borrower):
    open_loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    closed_loan = services.create_loan(second_copy, borrower, borrowed_date=JAN_1)
    services.return_loan(closed_loan, returned_date=JAN_1 + timedelta(days=3))

    admin_client.post(reverse('admin:circulation_loan_changelist'), {
        'action': 'delete_selected',
        '_selected_action': [open_loan.pk, closed_loan.pk],
        'post': 'yes',
    })

    copy.refresh_from_db()
    assert list(Loan.objects.all()) == [open_loan]
    assert copy.status == BookCopy.BORROWED


def test_ready_reservation_cannot_be_deleted_in_admin(admin_client, book, copy, borrower):
    reservation = services.reserve(book, borrower)
    services.promote(reservation, copy)

    response = admin_client.post(reverse('admin:circulation_reservation_delete', args=[reservation.pk]), {'post': 'yes'})
    admin_client.post(reverse('admin:circulation_reservation_changelist'), {
        'action': 'delete_selected',
        '_selected_action': [reservation.pk],
        'post': 'yes',
    })

    assert response.status_code == 403
    reservation.refresh_from_db()
    assert reservation.status == Reservation.READY


def test_copy_and_book_on_loan_cannot_be_deleted_in_admin(admin_client, book, copy, borrower):
    services.create_loan(copy, borrower, borrowed_date=JAN_1)

    copy_response = admin_client.post(reverse('admin:books_bookcopy_delete', args=[copy.pk]), {'post': 'yes'})
    book_response = admin_client.post(reverse('admin:books_book_delete', args=[book.pk]), {'post': 'yes'})

    assert copy_response.status_code == 403
    assert book_response.status_code == 403
    assert copy.loans.open().count() == 1


def test_mark_lost_action(admin_client, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = admin_client.post(reverse('admin:circulation_loan_changelist'), {
        'action': 'mark_lost',
        '_selected_action': [loan.pk],
    }, follow=True)

    loan.refresh_from_db()
    assert loan.status == Loan.LOST
    assert any('Marked 1 loan(s) as lost.' == str(m) for m in response.context['messages'])


def test_renew_action_reports_refusals(admin_client, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    services.return_loan(loan, returned_date=JAN_1 + timedelta(days=3))

    response = admin_client.post(reverse('admin:circulation_loan_changelist'), {
        'action': 'renew_loans',
        '_selected_action': [loan.pk],
    }, follow=True)

    loan.refresh_from_db()
    assert loan.renewal_count == 0
    assert any('Cannot renew' in str(m) for m in response.context['messages'])


def test_cancel_reservation_action_releases_copy(admin_client, book, copy, borrower):
    reservation = services.reserve(book, borrower)
    services.promote(reservation, copy)

    admin_client.post(reverse('admin:circulation_reservation_changelist'), {
        'action': 'cancel_reservations',
        '_selected_action': [reservation.pk],
    })

    reservation.refresh_from_db()
    copy.refresh_from_db()
    assert reservation.status == Reservation.CANCELLED
    assert copy.status == BookCopy.AVAILABLE


def test_admin_overdue_report(admin_client, copy, borrower):
    services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = admin_client.get(reverse('admin:circulation_overdue_report'))

    assert response.status_code == 200
    assert response.context['total_overdue'] == 1


def test_reset_role_permissions_action(admin_client, roles):
    librarian = Group.objects.get(name=LIBRARIAN)
    librarian.permissions.clear()

    admin_client.post(reverse('admin:auth_group_changelist'), {
        'action': 'reset_role_permissions',
        '_selected_action': [librarian.pk],
    })

    assert librarian.permissions.exists()
