from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from books.models import Book, BookCopy


def default_max_renewals():
    return settings.LIBRARY_MAX_RENEWALS


def calculate_fine(due_date, on_date, daily_rate=None):
    """Fine for a loan due on ``due_date`` and settled on ``on_date``."""
    if daily_rate is None:
        daily_rate = settings.LIBRARY_FINE_PER_DAY
    days_late = (on_date - due_date).days
    if days_late <= 0:
        return Decimal('0.00')
    return (Decimal(days_late) * Decimal(daily_rate)).quantize(Decimal('0.01'))


class LoanQuerySet(models.QuerySet):
    def open(self):
        return self.filter(returned_date__isnull=True, status__in=[Loan.ACTIVE, Loan.OVERDUE])

    def overdue(self, today=None):
        today = today or timezone.localdate()
        return self.open().filter(due_date__lt=today)

    def returned(self):
        return self.filter(returned_date__isnull=False)

    def unpaid_fines(self):
        return self.filter(fine_paid=False, fine_amount__gt=0)


class Loan(models.Model):
    ACTIVE = 'active'
    OVERDUE = 'overdue'
    RETURNED = 'returned'
    LOST = 'lost'

    STATUS_CHOICES = [
        (ACTIVE, 'Active'),
        (OVERDUE, 'Overdue'),
        (RETURNED, 'Returned'),
        (LOST, 'Lost'),
    ]
    OPEN_STATUSES = (ACTIVE, OVERDUE)

    book_copy = models.ForeignKey(
        BookCopy,
        on_delete=models.CASCADE,
        related_name='loans',
        verbose_name="Copy"
    )
    borrower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='loans',
        verbose_name="Borrower"
    )
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='issued_loans',
        verbose_name="Issued By"
    )
    borrowed_date = models.DateField(default=timezone.localdate, verbose_name="Date Borrowed")
    due_date = models.DateField(verbose_name="Due Date")
    returned_date = models.DateField(null=True, blank=True, verbose_name="Date Returned")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE, verbose_name="Status")
    fine_amount = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'), verbose_name="Fine")
    fine_paid = models.BooleanField(default=False, verbose_name="Fine Paid?")
    renewal_count = models.PositiveIntegerField(default=0, verbose_name="Renewal Count")
    max_renewals = models.PositiveIntegerField(default=default_max_renewals, verbose_name="Max Renewals Allowed")
    notes = models.TextField(blank=True, verbose_name="Notes")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = LoanQuerySet.as_manager()

    class Meta:
        ordering = ['-borrowed_date', '-id']
        indexes = [
            models.Index(fields=['borrower', 'status'], name='loan_borrower_status_idx'),
            models.Index(fields=['book_copy', 'returned_date'], name='loan_copy_returned_idx'),
            models.Index(fields=['due_date'], name='loan_due_date_idx'),
            models.Index(fields=['status'], name='loan_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['book_copy'],
                condition=Q(status__in=['active', 'overdue']),
                name='one_open_loan_per_copy',
            ),
            models.CheckConstraint(
                condition=Q(due_date__gte=models.F('borrowed_date')),
                name='loan_due_after_borrowed',
            ),
        ]
        permissions = [
            ('return_loan', "Can return loans"),
            ('view_fines', "Can view fines"),
            ('collect_fine', "Can collect fines"),
            ('waive_fine', "Can waive fines"),
            ('view_reports', "Can view reports"),
            ('export_reports', "Can export reports"),
        ]

    def __str__(self):
        return f"{self.borrower} - {self.book_copy} ({self.effective_status})"

    @property
    def is_open(self):
        return self.returned_date is None and self.status in self.OPEN_STATUSES

    def is_overdue(self, today=None):
        if not self.is_open:
            return False
        today = today or timezone.localdate()
        return self.due_date < today

    def days_overdue(self, today=None):
        today = today or timezone.localdate()
        if not self.is_overdue(today):
            return 0
        return (today - self.due_date).days

    def accrued_fine(self, today=None):
        """Fine the loan would carry if it were settled ``today``."""
        if self.returned_date is not None or self.status == self.LOST:
            return self.fine_amount
        return calculate_fine(self.due_date, today or timezone.localdate())

    @property
    def effective_status(self):
        # Overdue is derived from the dates; the stored status may lag behind.
        if self.returned_date is not None:
            return self.RETURNED
        if self.status == self.LOST:
            return self.LOST
        return self.OVERDUE if self.is_overdue() else self.ACTIVE

    @property
    def outstanding_fine(self):
        if self.fine_paid:
            return Decimal('0.00')
        return self.fine_amount

    def can_renew(self):
        return self.is_open and self.renewal_count < self.max_renewals


class ReservationQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=[Reservation.PENDING, Reservation.READY])

    def pending(self):
        return self.filter(status=Reservation.PENDING)

    def ready(self):
        return self.filter(status=Reservation.READY)

    def stale(self, today=None):
        today = today or timezone.localdate()
        return self.active().filter(expiry_date__lt=today)

    def for_user(self, user):
        return self.filter(user=user)

    def in_queue_order(self):
        return self.order_by('reserved_date', 'id')


def default_expiry_date():
    return timezone.localdate() + timedelta(days=settings.LIBRARY_RESERVATION_HOLD_DAYS)


class Reservation(models.Model):
    PENDING = 'pending'
    READY = 'ready'
    FULFILLED = 'fulfilled'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (READY, 'Ready for pickup'),
        (FULFILLED, 'Fulfilled'),
        (EXPIRED, 'Expired'),
        (CANCELLED, 'Cancelled'),
    ]
    ACTIVE_STATUSES = (PENDING, READY)

    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='reservations')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reservations',
        verbose_name="Reserved By"
    )
    reserved_date = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateField(default=default_expiry_date)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    book_copy = models.ForeignKey(
        BookCopy,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reservations',
        verbose_name="Held Copy"
    )
    notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ReservationQuerySet.as_manager()

    class Meta:
        ordering = ['reserved_date', 'id']
        indexes = [
            models.Index(fields=['user', 'status'], name='reservation_user_status_idx'),
            models.Index(fields=['book', 'status'], name='reservation_book_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['book_copy'],
                condition=Q(status='ready'),
                name='one_ready_reservation_per_copy',
            ),
        ]

    def __str__(self):
        return f"{self.user} - {self.book.title} ({self.status})"

    def is_pending(self):
        return self.status == self.PENDING

    def is_ready(self):
        return self.status == self.READY

    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def is_expired(self, today=None):
        if self.status == self.EXPIRED:
            return True
        today = today or timezone.localdate()
        return self.is_active() and self.expiry_date < today

    def queue_position(self):
        """1-based place among pending reservations for the same book, or None."""
        if not self.is_pending():
            return None
        ahead = Reservation.objects.pending().filter(book_id=self.book_id).filter(
            Q(reserved_date__lt=self.reserved_date) |
            Q(reserved_date=self.reserved_date, id__lt=self.id)
        ).count()
        return ahead + 1

    def estimated_wait_days(self):
        position = self.queue_position()
        if position is None:
            return None
        return position * settings.LIBRARY_AVERAGE_LOAN_DAYS

    def days_until_expiry(self, today=None):
        today = today or timezone.localdate()
        return (self.expiry_date - today).days
