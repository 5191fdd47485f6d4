from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from books.models import BookCopy
from circulation import services
from circulation.models import Loan, Reservation

from .conftest import JAN_1


def test_reconcile_marks_past_due_loans_overdue(copy, second_copy, borrower):
    late = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    on_time = services.create_loan(second_copy, borrower, borrowed_date=JAN_1 + timedelta(days=10))

    counts = services.reconcile(JAN_1 + timedelta(days=20))

    late.refresh_from_db()
    on_time.refresh_from_db()
    assert counts == {'overdue_loans': 1, 'expired_reservations': 0}
    assert late.status == Loan.OVERDUE
    assert on_time.status == Loan.ACTIVE


def test_reconcile_skips_returned_and_lost_loans(copy, second_copy, borrower):
    returned = services.create_loan(copy, borrower, borrowed_date=JAN_1)
    services.return_loan(returned, returned_date=JAN_1 + timedelta(days=3))
    lost = services.create_loan(second_copy, borrower, borrowed_date=JAN_1)
    services.mark_loan_lost(lost, on=JAN_1 + timedelta(days=3))

    assert services.refresh_overdue_loans(JAN_1 + timedelta(days=30)) == 0


def test_reconcile_expires_stale_reservations(book, copy, borrower, other_member):
    held = services.reserve(book, borrower)
    services.promote(held, copy)
    waiting = services.reserve(book, other_member.user)

    counts = services.reconcile(timezone.localdate() + timedelta(days=8))

    held.refresh_from_db()
    waiting.refresh_from_db()
    copy.refresh_from_db()
    assert counts['expired_reservations'] == 2
    assert held.status == Reservation.EXPIRED
    assert waiting.status == Reservation.EXPIRED
    assert copy.status == BookCopy.AVAILABLE


def test_reconcile_keeps_reservations_within_their_hold(book, borrower):
    reservation = services.reserve(book, borrower)

    assert services.expire_stale_reservations(reservation.expiry_date) == 0
    reservation.refresh_from_db()
    assert reservation.status == Reservation.PENDING


def test_reconcile_command(copy, borrower):
    services.create_loan(copy, borrower, borrowed_date=JAN_1)
    out = StringIO()

    call_command('reconcile_circulation', '--date', '2024-01-20', stdout=out)

    assert 'Marked 1 loan(s) overdue' in out.getvalue()
    assert Loan.objects.get().status == Loan.OVERDUE


def test_reconcile_command_rejects_bad_date(db):
    with pytest.raises(CommandError):
        call_command('reconcile_circulation', '--date', '20/01/2024')
