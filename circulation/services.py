"""Loan and reservation lifecycle.

Every state change to a loan, a reservation or the copy they point at goes
through this module. Each operation runs in one database transaction. Copy
status moves with a conditional ``UPDATE ... WHERE status = <expected>``, so
two concurrent requests can never both take the same copy. Loans and
reservations are re-read under ``select_for_update`` before they change.

Permission checks are not done here; callers authorize the acting user
through ``core.policies`` first.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.utils import timezone

from books.models import BookCopy
from .exceptions import AlreadyReturned, CopyUnavailable, InvalidState, NotFound, ValidationFailed
from .models import Loan, Reservation, calculate_fine

logger = logging.getLogger(__name__)


def _swap_copy_status(copy, expected, new):
    """Move ``copy`` from one of ``expected`` to ``new``; True if the row matched."""
    if isinstance(expected, str):
        expected = [expected]
    updated = BookCopy.objects.filter(pk=copy.pk, status__in=expected).update(
        status=new, updated_at=timezone.now()
    )
    if updated:
        copy.status = new
    return bool(updated)


def _refuse(error):
    logger.warning("Refused (%s): %s", error.code, error)
    return error


def _lock(model, pk):
    try:
        return model.objects.select_for_update().get(pk=pk)
    except model.DoesNotExist:
        raise _refuse(NotFound(f"{model._meta.verbose_name.capitalize()} #{pk} does not exist."))


def _member_profile(user):
    try:
        return user.member_profile
    except ObjectDoesNotExist:
        return None


def _append_note(existing, note):
    if not note:
        return existing
    return f"{existing}\n\n{note}".strip() if existing else note


# ────────────────────────────────────────────────
#   Loans
# ────────────────────────────────────────────────

def check_borrower(borrower, today=None):
    """Refuse borrowers whose membership rules forbid another loan."""
    member = _member_profile(borrower)
    if member is None:
        return
    if member.status != member.ACTIVE:
        raise _refuse(ValidationFailed(f"{borrower} has a {member.status} membership and cannot borrow."))
    if member.is_membership_expired(today):
        raise _refuse(ValidationFailed(f"{borrower}'s membership expired on {member.membership_expiry_date}."))
    if not member.can_borrow_more():
        raise _refuse(ValidationFailed(
            f"{borrower} already has {member.max_books_allowed} book(s) on loan, the maximum allowed."
        ))


def default_due_date(borrower, borrowed_date):
    member = _member_profile(borrower)
    days = member.max_days_allowed if member else settings.LIBRARY_LOAN_PERIOD_DAYS
    return borrowed_date + timedelta(days=days)


def create_loan(copy, borrower, issued_by=None, borrowed_date=None, due_date=None, notes='', reservation=None):
    """Lend ``copy`` to ``borrower``.

    The copy must be available, unless ``reservation`` is given: then it must
    be the copy held for that ready reservation, which is fulfilled as part of
    the same transaction.
    """
    borrowed_date = borrowed_date or timezone.localdate()
    due_date = due_date or default_due_date(borrower, borrowed_date)
    if due_date < borrowed_date:
        raise _refuse(ValidationFailed("Due date must be on or after the borrowed date."))

    check_borrower(borrower, borrowed_date)

    with transaction.atomic():
        if reservation is not None:
            reservation = _lock(Reservation, reservation.pk)
            if reservation.status != Reservation.READY:
                raise _refuse(InvalidState(f"Reservation #{reservation.pk} is {reservation.status}, not ready for pickup."))
            if reservation.user_id != borrower.pk:
                raise _refuse(InvalidState(f"Reservation #{reservation.pk} is held for another user."))
            if reservation.book_copy_id != copy.pk:
                raise _refuse(InvalidState(f"Reservation #{reservation.pk} holds a different copy."))
            taken = _swap_copy_status(copy, BookCopy.RESERVED, BookCopy.BORROWED)
        else:
            taken = _swap_copy_status(copy, BookCopy.AVAILABLE, BookCopy.BORROWED)

        if not taken:
            copy.refresh_from_db(fields=['status'])
            raise _refuse(CopyUnavailable(f"Copy {copy.call_number or copy.barcode} is {copy.status}, not available for borrowing."))

        loan = Loan.objects.create(
            book_copy=copy,
            borrower=borrower,
            issued_by=issued_by,
            borrowed_date=borrowed_date,
            due_date=due_date,
            status=Loan.ACTIVE,
            notes=notes or '',
        )

        if reservation is not None:
            reservation.status = Reservation.FULFILLED
            reservation.save(update_fields=['status', 'updated_at'])

    logger.info("Loan %s created: copy %s to user %s, due %s", loan.pk, copy.barcode, borrower.pk, due_date)
    return loan


def return_loan(loan, returned_date=None, condition_notes=''):
    """Check a loan back in, charging a late fine when it comes back after the due date."""
    returned_date = returned_date or timezone.localdate()

    with transaction.atomic():
        locked = _lock(Loan, loan.pk)
        if locked.returned_date is not None:
            raise _refuse(AlreadyReturned(f"This book was already returned on {locked.returned_date}."))
        if returned_date < locked.borrowed_date:
            raise _refuse(ValidationFailed("Returned date cannot be before the borrowed date."))

        # A fine collected or waived while the copy was lost stays settled.
        settled_while_lost = locked.status == Loan.LOST and locked.fine_paid

        locked.returned_date = returned_date
        locked.status = Loan.RETURNED
        if condition_notes:
            locked.notes = _append_note(locked.notes, f"Return notes: {condition_notes}")
        if returned_date > locked.due_date and not settled_while_lost:
            locked.fine_amount = calculate_fine(locked.due_date, returned_date)
            locked.fine_paid = False
        locked.save()

        copy = locked.book_copy
        _swap_copy_status(copy, [BookCopy.BORROWED, BookCopy.LOST, BookCopy.MAINTENANCE], BookCopy.AVAILABLE)

    _refresh(loan, locked)
    logger.info("Loan %s returned on %s, fine %s", loan.pk, returned_date, loan.fine_amount)
    return loan


def renew_loan(loan, days=None, today=None):
    days = days or settings.LIBRARY_LOAN_PERIOD_DAYS
    today = today or timezone.localdate()

    with transaction.atomic():
        locked = _lock(Loan, loan.pk)
        if locked.returned_date is not None:
            raise _refuse(AlreadyReturned("A returned loan cannot be renewed."))
        if locked.status == Loan.LOST:
            raise _refuse(InvalidState("A lost loan cannot be renewed."))
        if locked.renewal_count >= locked.max_renewals:
            raise _refuse(InvalidState(f"This loan has reached its maximum of {locked.max_renewals} renewal(s)."))

        locked.due_date += timedelta(days=days)
        locked.renewal_count += 1
        if locked.status == Loan.OVERDUE and locked.due_date >= today:
            locked.status = Loan.ACTIVE
        locked.save(update_fields=['due_date', 'renewal_count', 'status', 'updated_at'])

    _refresh(loan, locked)
    logger.info("Loan %s renewed until %s (%s/%s)", loan.pk, loan.due_date, loan.renewal_count, loan.max_renewals)
    return loan


def mark_loan_lost(loan, on=None):
    on = on or timezone.localdate()

    with transaction.atomic():
        locked = _lock(Loan, loan.pk)
        if locked.returned_date is not None:
            raise _refuse(AlreadyReturned("A returned loan cannot be marked as lost."))
        if locked.status == Loan.LOST:
            raise _refuse(InvalidState("This loan is already marked as lost."))

        locked.status = Loan.LOST
        locked.fine_amount = calculate_fine(locked.due_date, on)
        locked.fine_paid = False
        locked.save(update_fields=['status', 'fine_amount', 'fine_paid', 'updated_at'])
        _swap_copy_status(locked.book_copy, BookCopy.BORROWED, BookCopy.LOST)

    _refresh(loan, locked)
    logger.info("Loan %s marked lost, copy %s", loan.pk, locked.book_copy.barcode)
    return loan


def collect_fine(loan):
    with transaction.atomic():
        locked = _lock(Loan, loan.pk)
        if locked.fine_paid or locked.fine_amount <= 0:
            raise _refuse(InvalidState("This loan has no outstanding fine."))
        locked.fine_paid = True
        locked.save(update_fields=['fine_paid', 'updated_at'])

    _refresh(loan, locked)
    logger.info("Fine of %s collected on loan %s", loan.fine_amount, loan.pk)
    return loan


def waive_fine(loan, reason=''):
    with transaction.atomic():
        locked = _lock(Loan, loan.pk)
        if locked.fine_paid or locked.fine_amount <= 0:
            raise _refuse(InvalidState("This loan has no outstanding fine."))
        waived = locked.fine_amount
        locked.fine_amount = Decimal('0.00')
        locked.fine_paid = True
        locked.notes = _append_note(locked.notes, f"Fine of {waived} waived. {reason}".strip())
        locked.save(update_fields=['fine_amount', 'fine_paid', 'notes', 'updated_at'])

    _refresh(loan, locked)
    logger.info("Fine of %s waived on loan %s", waived, loan.pk)
    return loan


def _refresh(target, source):
    # Keep the caller's instance in step with the locked row that was saved.
    if target is not source:
        for field in target._meta.concrete_fields:
            setattr(target, field.attname, getattr(source, field.attname))


# ────────────────────────────────────────────────
#   Reservations
# ────────────────────────────────────────────────

def reserve(book, user):
    """Put ``user`` at the back of ``book``'s waiting list."""
    with transaction.atomic():
        if Reservation.objects.active().filter(book=book, user=user).exists():
            raise _refuse(ValidationFailed(f"{user} already has an active reservation for '{book.title}'."))
        now = timezone.now()
        reservation = Reservation.objects.create(
            book=book,
            user=user,
            reserved_date=now,
            expiry_date=timezone.localdate(now) + timedelta(days=settings.LIBRARY_RESERVATION_HOLD_DAYS),
            status=Reservation.PENDING,
        )

    logger.info("Reservation %s created for book %s by user %s", reservation.pk, book.pk, user.pk)
    return reservation


def promote(reservation, copy):
    """Hold ``copy`` for a pending reservation and flag it ready for pickup."""
    with transaction.atomic():
        locked = _lock(Reservation, reservation.pk)
        if locked.status != Reservation.PENDING:
            raise _refuse(InvalidState(f"Only pending reservations can be promoted; this one is {locked.status}."))
        if copy.book_id != locked.book_id:
            raise _refuse(ValidationFailed("The copy belongs to a different book than the reservation."))
        if not _swap_copy_status(copy, BookCopy.AVAILABLE, BookCopy.RESERVED):
            copy.refresh_from_db(fields=['status'])
            raise _refuse(CopyUnavailable(f"Copy {copy.call_number or copy.barcode} is {copy.status}, not available to hold."))

        locked.status = Reservation.READY
        locked.book_copy = copy
        locked.notified_at = timezone.now()
        locked.save(update_fields=['status', 'book_copy', 'notified_at', 'updated_at'])

    _refresh(reservation, locked)
    logger.info("Reservation %s ready, holding copy %s", reservation.pk, copy.barcode)
    return reservation


def fulfill(reservation):
    with transaction.atomic():
        locked = _lock(Reservation, reservation.pk)
        if locked.status != Reservation.READY:
            raise _refuse(InvalidState(f"Only ready reservations can be fulfilled; this one is {locked.status}."))
        locked.status = Reservation.FULFILLED
        locked.save(update_fields=['status', 'updated_at'])

    _refresh(reservation, locked)
    logger.info("Reservation %s fulfilled", reservation.pk)
    return reservation


def _close_reservation(reservation, new_status):
    with transaction.atomic():
        locked = _lock(Reservation, reservation.pk)
        if locked.status not in Reservation.ACTIVE_STATUSES:
            raise _refuse(InvalidState(f"Reservation #{locked.pk} is already {locked.status}."))
        locked.status = new_status
        locked.save(update_fields=['status', 'updated_at'])
        if locked.book_copy_id:
            # Only a copy still on hold goes back on the shelf.
            _swap_copy_status(locked.book_copy, BookCopy.RESERVED, BookCopy.AVAILABLE)

    _refresh(reservation, locked)
    logger.info("Reservation %s %s", reservation.pk, new_status)
    return reservation


def expire(reservation):
    return _close_reservation(reservation, Reservation.EXPIRED)


def cancel(reservation):
    return _close_reservation(reservation, Reservation.CANCELLED)


def queue_position(reservation):
    return reservation.queue_position()


def estimated_wait_days(reservation):
    return reservation.estimated_wait_days()


def next_in_queue(book):
    return Reservation.objects.pending().filter(book=book).in_queue_order().first()


# ────────────────────────────────────────────────
#   Reconciliation sweep
# ────────────────────────────────────────────────

def refresh_overdue_loans(today=None):
    """Store ``overdue`` on open loans past their due date. Returns the count."""
    today = today or timezone.localdate()
    count = Loan.objects.filter(
        status=Loan.ACTIVE,
        returned_date__isnull=True,
        due_date__lt=today,
    ).update(status=Loan.OVERDUE, updated_at=timezone.now())
    if count:
        logger.info("Marked %s loan(s) overdue as of %s", count, today)
    return count


def expire_stale_reservations(today=None):
    today = today or timezone.localdate()
    expired = 0
    for reservation in Reservation.objects.stale(today):
        try:
            expire(reservation)
        except InvalidState:
            # Closed by someone else since the query ran.
            continue
        expired += 1
    if expired:
        logger.info("Expired %s reservation(s) as of %s", expired, today)
    return expired


def reconcile(today=None):
    today = today or timezone.localdate()
    return {
        'overdue_loans': refresh_overdue_loans(today),
        'expired_reservations': expire_stale_reservations(today),
    }
