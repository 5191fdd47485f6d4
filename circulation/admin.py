from django.contrib import admin
from django.shortcuts import render
from django.urls import path
from django.utils import timezone
from django.utils.html import format_html

from . import services
from .exceptions import CirculationError
from .models import Loan, Reservation


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = (
        'borrower',
        'book_copy',
        'borrowed_date',
        'due_date',
        'status_colored',
        'days_overdue_display',
        'fine_amount',
        'fine_paid',
        'renewal_count',
        'issued_by',
    )
    list_filter = ('status', 'borrowed_date', 'due_date', 'fine_paid', 'renewal_count')
    search_fields = (
        'borrower__username',
        'borrower__email',
        'book_copy__barcode',
        'book_copy__book__title',
        'book_copy__book__isbn',
    )
    date_hierarchy = 'borrowed_date'
    readonly_fields = (
        'book_copy',
        'borrower',
        'issued_by',
        'borrowed_date',
        'due_date',
        'returned_date',
        'status',
        'fine_amount',
        'fine_paid',
        'renewal_count',
    )
    actions = ['renew_loans', 'mark_lost', 'mark_returned']

    def has_add_permission(self, request):
        # Loans are opened through the circulation desk.
        return False

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.is_open:
            return False
        return super().has_delete_permission(request, obj)

    def delete_queryset(self, request, queryset):
        open_loans = queryset.filter(returned_date__isnull=True, status__in=Loan.OPEN_STATUSES)
        if open_loans.exists():
            self.message_user(request, f"Skipped {open_loans.count()} open loan(s); return them first.", level='warning')
        super().delete_queryset(request, queryset.exclude(pk__in=open_loans))

    def get_urls(self):
        urls = super().get_urls()
        custom_urls = [
            path('overdue-report/', self.admin_site.admin_view(self.overdue_report_view),
                 name='circulation_overdue_report'),
        ]
        return custom_urls + urls

    @admin.display(description="Status")
    def status_colored(self, obj):
        colors = {
            Loan.ACTIVE: 'blue',
            Loan.OVERDUE: 'red',
            Loan.RETURNED: 'green',
            Loan.LOST: 'purple',
        }
        status = obj.effective_status
        return format_html('<span style="color: {};">{}</span>', colors.get(status, 'black'), status)

    @admin.display(description="Overdue")
    def days_overdue_display(self, obj):
        if obj.pk is None:
            return "-"
        days = obj.days_overdue()
        if days > 0:
            return format_html('<strong style="color:red;">{} days overdue</strong>', days)
        return "-"

    def _run(self, request, queryset, operation, verb, done):
        success_count = 0
        for loan in queryset:
            try:
                operation(loan)
            except CirculationError as e:
                self.message_user(request, f"Cannot {verb} {loan}: {e}", level='error')
            else:
                success_count += 1
        if success_count:
            self.message_user(request, done.format(count=success_count))

    @admin.action(description="Renew selected loans (extend by the standard loan period)")
    def renew_loans(self, request, queryset):
        self._run(request, queryset, services.renew_loan, 'renew', "Renewed {count} loan(s).")

    @admin.action(description="Mark selected loans as lost")
    def mark_lost(self, request, queryset):
        self._run(request, queryset, services.mark_loan_lost, 'mark as lost', "Marked {count} loan(s) as lost.")

    @admin.action(description="Mark selected loans as returned")
    def mark_returned(self, request, queryset):
        self._run(request, queryset, services.return_loan, 'return', "Returned {count} loan(s).")

    def overdue_report_view(self, request):
        today = timezone.localdate()
        overdue = Loan.objects.overdue(today).select_related('borrower', 'book_copy__book').order_by('due_date')
        rows = [
            {'loan': loan, 'days_overdue': loan.days_overdue(today), 'fine': loan.accrued_fine(today)}
            for loan in overdue
        ]

        context = {
            **self.admin_site.each_context(request),
            'rows': rows,
            'total_overdue': len(rows),
            'total_fine': sum((row['fine'] for row in rows), 0),
            'title': 'Overdue Loans Report',
            'opts': self.model._meta,
        }
        return render(request, 'admin/circulation/overdue_report.html', context)


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = ('user', 'book', 'reserved_date', 'expiry_date', 'status', 'book_copy', 'queue_display')
    list_filter = ('status', 'expiry_date')
    search_fields = ('user__username', 'user__email', 'book__title', 'book__isbn')
    readonly_fields = ('user', 'book', 'reserved_date', 'status', 'book_copy', 'notified_at')
    actions = ['cancel_reservations', 'expire_reservations']

    def has_add_permission(self, request):
        # Reservations join the queue through the reservation pages.
        return False

    def has_delete_permission(self, request, obj=None):
        # A ready reservation holds a copy; cancel it to release the copy.
        if obj is not None and obj.is_ready():
            return False
        return super().has_delete_permission(request, obj)

    def delete_queryset(self, request, queryset):
        ready = queryset.filter(status=Reservation.READY)
        if ready.exists():
            self.message_user(request, f"Skipped {ready.count()} ready reservation(s); cancel them first.", level='warning')
        super().delete_queryset(request, queryset.exclude(status=Reservation.READY))

    @admin.display(description="Queue")
    def queue_display(self, obj):
        position = obj.queue_position()
        return f"#{position}" if position else "-"

    def _close(self, request, queryset, operation, label):
        closed = 0
        for reservation in queryset:
            try:
                operation(reservation)
            except CirculationError as e:
                self.message_user(request, f"Cannot update {reservation}: {e}", level='error')
            else:
                closed += 1
        if closed:
            self.message_user(request, f"{label} {closed} reservation(s).")

    @admin.action(description="Cancel selected reservations")
    def cancel_reservations(self, request, queryset):
        self._close(request, queryset, services.cancel, 'Cancelled')

    @admin.action(description="Expire selected reservations")
    def expire_reservations(self, request, queryset):
        self._close(request, queryset, services.expire, 'Expired')
