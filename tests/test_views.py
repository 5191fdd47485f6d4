from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from books.models import Book, BookCopy, Category
from circulation import services
from circulation.models import Loan, Reservation
from members.models import Member

from .conftest import JAN_1


@pytest.fixture
def desk(client, librarian):
    client.force_login(librarian)
    return client


@pytest.fixture
def patron(client, borrower):
    client.force_login(borrower)
    return client


@pytest.fixture
def admin_desk(client, library_admin):
    client.force_login(library_admin)
    return client


def test_home_is_public(client, db):
    response = client.get(reverse('home'))

    assert response.status_code == 200


def test_home_sends_staff_to_the_desk(desk):
    response = desk.get(reverse('home'))

    assert response.status_code == 302
    assert response.url == reverse('circulation:librarian_dashboard')


def test_home_sends_members_to_their_loans(patron):
    response = patron.get(reverse('home'))

    assert response.url == reverse('circulation:my_loans')


def test_catalog_requires_login(client, db):
    response = client.get(reverse('books:book_list'))

    assert response.status_code == 302
    assert reverse('login') in response.url


def test_book_list_search(desk, book, other_book):
    response = desk.get(reverse('books:book_list'), {'search': 'orwell'})

    assert response.status_code == 200
    assert list(response.context['books']) == [book]
    assert response.context['can']['canCreateBooks'] is True
    assert response.context['can']['canDeleteBooks'] is False


def test_book_detail(patron, book, copy):
    response = patron.get(reverse('books:book_detail', args=[book.id]))

    assert response.status_code == 200
    assert list(response.context['copies']) == [copy]


def test_member_cannot_create_books(patron):
    response = patron.post(reverse('books:book_create'), {'title': 'X'})

    assert response.status_code == 403
    assert not Book.objects.filter(title='X').exists()


def test_librarian_adds_a_copy(desk, book):
    response = desk.post(reverse('books:copy_create', args=[book.id]), {'condition': 'excellent', 'location': 'Annex'})

    assert response.status_code == 302
    copy = book.copies.get()
    assert copy.condition == 'excellent'
    assert copy.location == 'Annex'


def test_copy_form_refuses_circulation_statuses(desk, book, copy):
    response = desk.post(
        reverse('books:copy_update', args=[book.id, copy.id]),
        {'call_number': copy.call_number, 'condition': 'good', 'status': BookCopy.BORROWED, 'location': 'Main Library'},
    )

    assert response.status_code == 200
    assert 'status' in response.context['form'].errors
    copy.refresh_from_db()
    assert copy.status == BookCopy.AVAILABLE


def test_copy_held_for_a_reservation_cannot_be_deleted(admin_desk, book, copy, borrower):
    reservation = services.reserve(book, borrower)
    services.promote(reservation, copy)

    response = admin_desk.post(reverse('books:copy_delete', args=[book.id, copy.id]))

    assert response.url == reverse('books:book_detail', args=[book.id])
    assert BookCopy.objects.filter(pk=copy.pk).exists()
    reservation.refresh_from_db()
    assert reservation.book_copy == copy


def test_copy_on_the_shelf_can_be_deleted(admin_desk, book, copy):
    admin_desk.post(reverse('books:copy_delete', args=[book.id, copy.id]))

    assert not BookCopy.objects.filter(pk=copy.pk).exists()


def test_scan_barcode_redirects_to_book(desk, book, copy):
    response = desk.get(reverse('books:scan_barcode', args=[copy.barcode]))

    assert response.url == reverse('books:book_detail', args=[book.id])


def test_reference_list_and_create(desk, book):
    response = desk.get(reverse('books:reference_list', args=['categories']))
    assert response.status_code == 200
    assert [item.book_count for item in response.context['items']] == [1]

    desk.post(reverse('books:reference_create', args=['genres']), {'name': 'Dystopia'})
    assert desk.get(reverse('books:reference_list', args=['genres'])).context['items'].count() == 1


def test_reference_delete_is_refused_while_in_use(admin_desk, book):
    category = Category.objects.get(name='Fiction')

    admin_desk.post(reverse('books:reference_delete', args=['categories', category.id]))

    assert Category.objects.filter(pk=category.pk).exists()


def test_unknown_reference_list(desk):
    assert desk.get(reverse('books:reference_list', args=['shelves'])).status_code == 404


def test_copy_search_json(desk, copy, second_copy, borrower):
    services.create_loan(second_copy, borrower)

    response = desk.get(reverse('api_copy_search'), {'q': 'Orw'})

    data = response.json()['data']
    assert [row['id'] for row in data] == [copy.id]
    assert data[0]['book']['title'] == 'Nineteen Eighty-Four'


def test_copy_search_needs_two_characters(desk, copy):
    response = desk.get(reverse('api_copy_search'), {'q': 'N'})

    assert response.json() == {'data': []}


def test_create_loan_through_the_desk(desk, copy, borrower, librarian):
    response = desk.post(reverse('circulation:loan_create'), {
        'borrower': borrower.id,
        'book_copy': copy.id,
        'borrowed_date': timezone.localdate().isoformat(),
    })

    loan = Loan.objects.get()
    assert response.url == reverse('circulation:loan_detail', args=[loan.id])
    assert loan.issued_by == librarian
    copy.refresh_from_db()
    assert copy.status == BookCopy.BORROWED


def test_loan_form_rejects_early_due_date(desk, copy, borrower):
    today = timezone.localdate()
    response = desk.post(reverse('circulation:loan_create'), {
        'borrower': borrower.id,
        'book_copy': copy.id,
        'borrowed_date': today.isoformat(),
        'due_date': (today - timedelta(days=1)).isoformat(),
    })

    assert response.status_code == 200
    assert 'due_date' in response.context['form'].errors
    assert not Loan.objects.exists()


def test_member_cannot_lend(patron, copy, borrower):
    response = patron.post(reverse('circulation:loan_create'), {'borrower': borrower.id, 'book_copy': copy.id})

    assert response.status_code == 403


def test_loan_list_filters_on_computed_status(desk, copy, second_copy, borrower):
    late = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    current = services.create_loan(second_copy, borrower)

    overdue = desk.get(reverse('circulation:loan_list'), {'status': 'overdue'})
    active = desk.get(reverse('circulation:loan_list'), {'status': 'active'})

    assert list(overdue.context['loans']) == [late]
    assert list(active.context['loans']) == [current]


def test_return_through_the_desk_reports_fine(desk, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = desk.post(
        reverse('circulation:loan_return', args=[loan.id]),
        {'returned_date': (JAN_1 + timedelta(days=20)).isoformat()},
        follow=True,
    )

    loan.refresh_from_db()
    assert loan.status == Loan.RETURNED
    assert str(loan.fine_amount) == '6.00'
    assert any('late' in str(m) for m in response.context['messages'])


def test_second_return_shows_an_error(desk, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    services.return_loan(loan, returned_date=JAN_1 + timedelta(days=2))

    response = desk.post(
        reverse('circulation:loan_return', args=[loan.id]),
        {'returned_date': (JAN_1 + timedelta(days=5)).isoformat()},
        follow=True,
    )

    assert any('already returned' in str(m) for m in response.context['messages'])


def test_borrower_sees_own_loan_but_not_others(client, copy, second_copy, borrower, other_member):
    mine = services.create_loan(copy, borrower)
    theirs = services.create_loan(second_copy, other_member.user)
    client.force_login(borrower)

    assert client.get(reverse('circulation:loan_detail', args=[mine.id])).status_code == 200
    assert client.get(reverse('circulation:loan_detail', args=[theirs.id])).status_code == 403


def test_renew_and_mark_lost_views(desk, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)

    desk.post(reverse('circulation:loan_renew', args=[loan.id]), {'days': 7})
    loan.refresh_from_db()
    assert loan.renewal_count == 1

    desk.post(reverse('circulation:loan_mark_lost', args=[loan.id]))
    loan.refresh_from_db()
    assert loan.status == Loan.LOST


def test_librarian_cannot_waive_fines(desk, copy, borrower):
    loan = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    services.return_loan(loan, returned_date=JAN_1 + timedelta(days=20))

    assert desk.post(reverse('circulation:fine_waive', args=[loan.id])).status_code == 403
    desk.post(reverse('circulation:fine_collect', args=[loan.id]))

    loan.refresh_from_db()
    assert loan.fine_paid


def test_member_reserves_and_cancels(patron, book, borrower):
    response = patron.post(reverse('circulation:reservation_create'), {'book': book.id})

    reservation = Reservation.objects.get()
    assert response.url == reverse('circulation:reservation_list')
    assert reservation.user == borrower

    patron.post(reverse('circulation:reservation_cancel', args=[reservation.id]))
    reservation.refresh_from_db()
    assert reservation.status == Reservation.CANCELLED


def test_member_cannot_reserve_for_someone_else(patron, book, other_member):
    response = patron.post(reverse('circulation:reservation_create'), {'book': book.id, 'user': other_member.user.id})

    assert response.status_code == 403
    assert not Reservation.objects.exists()


def test_member_only_lists_own_reservations(patron, book, borrower, other_member):
    services.reserve(book, borrower)
    services.reserve(book, other_member.user)

    response = patron.get(reverse('circulation:reservation_list'))

    assert [r.user for r in response.context['reservations']] == [borrower]


def test_promote_and_checkout_reservation(desk, book, copy, borrower):
    reservation = services.reserve(book, borrower)

    desk.post(reverse('circulation:reservation_promote', args=[reservation.id]), {'book_copy': copy.id})
    reservation.refresh_from_db()
    assert reservation.status == Reservation.READY

    response = desk.post(reverse('circulation:reservation_checkout', args=[reservation.id]))

    loan = Loan.objects.get()
    assert response.url == reverse('circulation:loan_detail', args=[loan.id])
    assert loan.borrower == borrower
    reservation.refresh_from_db()
    assert reservation.status == Reservation.FULFILLED


def test_my_loans(patron, copy, borrower):
    services.create_loan(copy, borrower, borrowed_date=JAN_1)

    response = patron.get(reverse('circulation:my_loans'))

    assert response.status_code == 200
    assert response.context['borrowed_count'] == 1
    assert response.context['overdue_count'] == 1


def test_my_loans_shows_days_left_on_a_ready_reservation(patron, book, copy, borrower):
    reservation = services.reserve(book, borrower)
    services.promote(reservation, copy)

    response = patron.get(reverse('circulation:my_loans'))

    assert b'7 days left' in response.content


def test_librarian_dashboard(desk, copy, borrower):
    services.create_loan(copy, borrower)

    response = desk.get(reverse('circulation:librarian_dashboard'))

    assert response.status_code == 200
    assert response.context['borrowed_copies'] == 1
    assert response.context['today_issued'] == 1
    assert sum(response.context['weekly_borrow_counts']) == 1


def test_overdue_report_csv_needs_export_permission(desk, library_admin, client, copy, borrower):
    services.create_loan(copy, borrower, borrowed_date=JAN_1)

    assert desk.get(reverse('circulation:overdue_report')).status_code == 200
    assert desk.get(reverse('circulation:overdue_report'), {'format': 'csv'}).status_code == 403

    client.force_login(library_admin)
    response = client.get(reverse('circulation:overdue_report'), {'format': 'csv'})
    assert response['Content-Type'] == 'text/csv'
    lines = response.content.decode().splitlines()
    assert lines[0].startswith('Borrower,Email,Title')
    assert 'Nineteen Eighty-Four' in lines[1]


def test_member_list_and_detail(desk, member, copy):
    services.create_loan(copy, member.user, borrowed_date=JAN_1)

    listing = desk.get(reverse('members:member_list'), {'has_overdue': 'yes'})
    detail = desk.get(reverse('members:member_detail', args=[member.id]))

    assert [m.overdue_loan_count for m in listing.context['members']] == [1]
    assert detail.status_code == 200
    assert detail.context['overdue_count'] == 1


def test_admin_creates_member(admin_desk):
    today = timezone.localdate()
    response = admin_desk.post(reverse('members:member_create'), {
        'username': 'david.wilson',
        'first_name': 'David',
        'last_name': 'Wilson',
        'email': 'david@example.com',
        'password': 'long-enough-pw',
        'status': Member.ACTIVE,
        'membership_type': 'student',
        'membership_start_date': today.isoformat(),
        'membership_expiry_date': (today + timedelta(days=365)).isoformat(),
        'max_books_allowed': 3,
        'max_days_allowed': 14,
    })

    member = Member.objects.get(user__username='david.wilson')
    assert response.url == reverse('members:member_detail', args=[member.id])
    assert member.max_books_allowed == 3


def test_librarian_cannot_create_members(desk):
    assert desk.get(reverse('members:member_create')).status_code == 403


def test_cannot_delete_member_with_open_loans(admin_desk, member, copy):
    services.create_loan(copy, member.user)

    admin_desk.post(reverse('members:member_delete', args=[member.id]))

    assert Member.objects.filter(pk=member.pk).exists()


def test_staff_list(desk, librarian):
    response = desk.get(reverse('members:staff_list'))

    assert response.status_code == 200
