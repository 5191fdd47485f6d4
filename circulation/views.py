import csv
import logging
from datetime import timedelta

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ObjectDoesNotExist
from django.core.paginator import Paginator
from django.db.models import Count, Q, Sum
from django.db.models.functions import ExtractWeekDay
from django.http import HttpResponse
from django.shortcuts import render, redirect, get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_POST

from books.models import Book, BookCopy
from core.policies import authorize, can, capability_required, capabilities
from . import services
from .exceptions import CirculationError
from .forms import LoanForm, PromoteForm, RenewForm, ReservationForm, ReturnForm
from .models import Loan, Reservation

logger = logging.getLogger(__name__)

LOAN_SORTS = ('borrowed_date', 'due_date', 'created_at')


def filter_by_status(loans, status, today=None):
    """Filter loans on the status they have today, not the one last stored."""
    today = today or timezone.localdate()
    if status == Loan.OVERDUE:
        return loans.overdue(today)
    if status == Loan.ACTIVE:
        return loans.open().filter(due_date__gte=today)
    if status == Loan.RETURNED:
        return loans.returned()
    if status == Loan.LOST:
        return loans.filter(status=Loan.LOST, returned_date__isnull=True)
    return loans


@capability_required('view_loans')
def loan_list(request):
    query = request.GET.get('search', '').strip()
    loans = Loan.objects.select_related('book_copy__book', 'borrower', 'issued_by')

    if query:
        loans = loans.filter(
            Q(borrower__username__icontains=query) |
            Q(borrower__first_name__icontains=query) |
            Q(borrower__last_name__icontains=query) |
            Q(borrower__email__icontains=query) |
            Q(book_copy__book__title__icontains=query) |
            Q(book_copy__book__isbn__icontains=query) |
            Q(book_copy__barcode__icontains=query)
        )

    status = request.GET.get('status', '')
    loans = filter_by_status(loans, status)

    sort_by = request.GET.get('sort_by')
    if sort_by not in LOAN_SORTS:
        sort_by = 'borrowed_date'
    prefix = '' if request.GET.get('sort_order') == 'asc' else '-'
    loans = loans.order_by(f'{prefix}{sort_by}', '-id')

    page = Paginator(loans, 15).get_page(request.GET.get('page'))

    context = {
        'loans': page,
        'query': query,
        'status': status,
        'status_options': Loan.STATUS_CHOICES,
        'filters': {key: request.GET.get(key, '') for key in ('status', 'sort_by', 'sort_order')},
        'can': capabilities(request.user, 'create_loans', 'return_loans', 'collect_fines', 'waive_fines'),
    }
    return render(request, 'circulation/loan_list.html', context)


@capability_required('create_loans')
def loan_create(request):
    if request.method == 'POST':
        form = LoanForm(request.POST)
        if form.is_valid():
            data = form.cleaned_data
            try:
                loan = services.create_loan(
                    data['book_copy'],
                    data['borrower'],
                    issued_by=request.user,
                    borrowed_date=data['borrowed_date'],
                    due_date=data['due_date'],
                    notes=data['notes'],
                )
            except CirculationError as e:
                form.add_error(None, e)
            else:
                messages.success(request, f"Loan created. Due back on {loan.due_date:%d %b %Y}.")
                return redirect('circulation:loan_detail', loan_id=loan.id)
    else:
        initial = {}
        copy_id = request.GET.get('copy')
        if copy_id and copy_id.isdigit():
            initial['book_copy'] = copy_id
        form = LoanForm(initial=initial)
    return render(request, 'circulation/loan_form.html', {'form': form, 'title': 'New Loan'})


@login_required
def loan_detail(request, loan_id):
    loan = get_object_or_404(
        Loan.objects.select_related('book_copy__book', 'borrower', 'issued_by'),
        id=loan_id
    )
    if loan.borrower_id != request.user.id:
        authorize(request.user, 'view_loans')

    context = {
        'loan': loan,
        'today': timezone.localdate(),
        'return_form': ReturnForm(loan=loan),
        'renew_form': RenewForm(),
        'can': capabilities(request.user, 'return_loans', 'collect_fines', 'waive_fines'),
    }
    return render(request, 'circulation/loan_detail.html', context)


@capability_required('return_loans')
def loan_return(request, loan_id):
    loan = get_object_or_404(Loan.objects.select_related('book_copy__book', 'borrower'), id=loan_id)

    if request.method == 'POST':
        form = ReturnForm(request.POST, loan=loan)
        if form.is_valid():
            try:
                services.return_loan(
                    loan,
                    returned_date=form.cleaned_data['returned_date'],
                    condition_notes=form.cleaned_data['condition_notes'],
                )
            except CirculationError as e:
                messages.error(request, str(e))
                return redirect('circulation:loan_detail', loan_id=loan.id)

            if loan.fine_amount > 0 and not loan.fine_paid:
                days_late = (loan.returned_date - loan.due_date).days
                messages.warning(request, f"Returned {days_late} day(s) late. Fine: {loan.fine_amount}")
            else:
                messages.success(request, "Book returned successfully.")
            return redirect('circulation:loan_detail', loan_id=loan.id)
    else:
        form = ReturnForm(loan=loan)

    today = timezone.localdate()
    context = {
        'loan': loan,
        'form': form,
        'accrued_fine': loan.accrued_fine(today),
        'days_left': max((loan.due_date - today).days, 0),
    }
    return render(request, 'circulation/loan_return.html', context)


@require_POST
@capability_required('return_loans')
def loan_renew(request, loan_id):
    loan = get_object_or_404(Loan, id=loan_id)
    form = RenewForm(request.POST)
    days = form.cleaned_data.get('days') if form.is_valid() else None
    try:
        services.renew_loan(loan, days=days)
    except CirculationError as e:
        messages.error(request, f"Cannot renew: {e}")
    else:
        messages.success(request, f"Loan renewed. New due date: {loan.due_date:%d %b %Y}.")
    return redirect('circulation:loan_detail', loan_id=loan.id)


@require_POST
@capability_required('return_loans')
def loan_mark_lost(request, loan_id):
    loan = get_object_or_404(Loan, id=loan_id)
    try:
        services.mark_loan_lost(loan)
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.warning(request, f"Loan marked as lost. Outstanding fine: {loan.fine_amount}")
    return redirect('circulation:loan_detail', loan_id=loan.id)


@require_POST
@capability_required('collect_fines')
def fine_collect(request, loan_id):
    loan = get_object_or_404(Loan, id=loan_id)
    try:
        services.collect_fine(loan)
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"Fine of {loan.fine_amount} collected.")
    return redirect('circulation:loan_detail', loan_id=loan.id)


@require_POST
@capability_required('waive_fines')
def fine_waive(request, loan_id):
    loan = get_object_or_404(Loan, id=loan_id)
    try:
        services.waive_fine(loan, reason=request.POST.get('reason', '').strip())
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, "Fine waived.")
    return redirect('circulation:loan_detail', loan_id=loan.id)


# ────────────────────────────────────────────────
#   Reservations
# ────────────────────────────────────────────────

@login_required
def reservation_list(request):
    reservations = Reservation.objects.select_related('book', 'user', 'book_copy')
    manage = can(request.user, 'create_loans')
    if not manage:
        reservations = reservations.for_user(request.user)

    status = request.GET.get('status', '')
    if status in dict(Reservation.STATUS_CHOICES):
        reservations = reservations.filter(status=status)

    book_id = request.GET.get('book')
    if book_id and book_id.isdigit():
        reservations = reservations.filter(book_id=book_id)

    page = Paginator(reservations.in_queue_order(), 15).get_page(request.GET.get('page'))

    context = {
        'reservations': page,
        'status': status,
        'status_options': Reservation.STATUS_CHOICES,
        'manage': manage,
    }
    return render(request, 'circulation/reservation_list.html', context)


@login_required
def reservation_create(request):
    if request.method == 'POST':
        form = ReservationForm(request.POST)
        if form.is_valid():
            user = form.cleaned_data['user'] or request.user
            if user != request.user:
                authorize(request.user, 'create_loans')
            try:
                reservation = services.reserve(form.cleaned_data['book'], user)
            except CirculationError as e:
                form.add_error(None, e)
            else:
                messages.success(
                    request,
                    f"Reserved '{reservation.book.title}'. Queue position: {reservation.queue_position()}."
                )
                return redirect('circulation:reservation_list')
    else:
        initial = {}
        book_id = request.GET.get('book')
        if book_id and book_id.isdigit():
            initial['book'] = book_id
        form = ReservationForm(initial=initial)
    return render(request, 'circulation/reservation_form.html', {'form': form})


@capability_required('create_loans')
def reservation_promote(request, reservation_id):
    reservation = get_object_or_404(Reservation.objects.select_related('book', 'user'), id=reservation_id)

    if request.method == 'POST':
        form = PromoteForm(request.POST, reservation=reservation)
        if form.is_valid():
            try:
                services.promote(reservation, form.cleaned_data['book_copy'])
            except CirculationError as e:
                form.add_error(None, e)
            else:
                messages.success(request, f"Copy held for {reservation.user}. Ready for pickup.")
                return redirect('circulation:reservation_list')
    else:
        form = PromoteForm(reservation=reservation)
    return render(request, 'circulation/reservation_promote.html', {'form': form, 'reservation': reservation})


@require_POST
@capability_required('create_loans')
def reservation_checkout(request, reservation_id):
    """Lend the held copy to the member who reserved it."""
    reservation = get_object_or_404(Reservation.objects.select_related('book_copy', 'user'), id=reservation_id)
    if reservation.book_copy is None:
        messages.error(request, "This reservation has no copy on hold.")
        return redirect('circulation:reservation_list')
    try:
        loan = services.create_loan(
            reservation.book_copy,
            reservation.user,
            issued_by=request.user,
            reservation=reservation,
        )
    except CirculationError as e:
        messages.error(request, str(e))
        return redirect('circulation:reservation_list')
    messages.success(request, f"Loan created from reservation. Due back on {loan.due_date:%d %b %Y}.")
    return redirect('circulation:loan_detail', loan_id=loan.id)


@require_POST
@capability_required('create_loans')
def reservation_fulfill(request, reservation_id):
    reservation = get_object_or_404(Reservation, id=reservation_id)
    try:
        services.fulfill(reservation)
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, "Reservation marked as fulfilled.")
    return redirect('circulation:reservation_list')


@require_POST
@login_required
def reservation_cancel(request, reservation_id):
    reservation = get_object_or_404(Reservation, id=reservation_id)
    if reservation.user_id != request.user.id:
        authorize(request.user, 'create_loans')
    try:
        services.cancel(reservation)
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, "Reservation cancelled.")
    return redirect('circulation:reservation_list')


@require_POST
@capability_required('create_loans')
def reservation_expire(request, reservation_id):
    reservation = get_object_or_404(Reservation, id=reservation_id)
    try:
        services.expire(reservation)
    except CirculationError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, "Reservation expired.")
    return redirect('circulation:reservation_list')


# ────────────────────────────────────────────────
#   Dashboards and reports
# ────────────────────────────────────────────────

@login_required
def my_loans(request):
    today = timezone.localdate()
    loans = Loan.objects.filter(borrower=request.user).select_related('book_copy__book')
    open_loans = loans.open().order_by('due_date')

    try:
        member = request.user.member_profile
    except ObjectDoesNotExist:
        member = None

    context = {
        'member': member,
        'open_loans': open_loans,
        'history': loans.returned().order_by('-returned_date')[:20],
        'borrowed_count': open_loans.count(),
        'overdue_count': loans.overdue(today).count(),
        'total_fine': loans.unpaid_fines().aggregate(total=Sum('fine_amount'))['total'] or 0,
        'reservations': Reservation.objects.active().for_user(request.user).select_related('book', 'book_copy'),
        'today': today,
    }
    return render(request, 'circulation/my_loans.html', context)


@capability_required('create_loans')
def librarian_dashboard(request):
    today = timezone.localdate()
    open_loans = Loan.objects.open().select_related('book_copy__book', 'borrower')

    copy_counts = dict(
        BookCopy.objects.values_list('status').annotate(count=Count('id')).order_by()
    )

    # Weekly borrowings graph data
    week_start = today - timedelta(days=today.weekday())
    weekly_data = Loan.objects.filter(
        borrowed_date__gte=week_start,
        borrowed_date__lte=today
    ).annotate(
        weekday=ExtractWeekDay('borrowed_date')
    ).values('weekday').annotate(
        count=Count('id')
    ).order_by('weekday')

    # ExtractWeekDay counts from Sunday = 1; the chart starts on Monday.
    chart_data = [0] * 7
    for entry in weekly_data:
        chart_data[(entry['weekday'] - 2) % 7] = entry['count']

    max_count = max(chart_data) if any(chart_data) else 1
    scaled_heights = [(count / max_count * 100) for count in chart_data]

    context = {
        'total_books': Book.objects.count(),
        'total_copies': sum(copy_counts.values()),
        'available_copies': copy_counts.get(BookCopy.AVAILABLE, 0),
        'borrowed_copies': copy_counts.get(BookCopy.BORROWED, 0),
        'reserved_copies': copy_counts.get(BookCopy.RESERVED, 0),
        'total_borrowed': open_loans.count(),
        'today_issued': open_loans.filter(borrowed_date=today).count(),
        'overdue_count': Loan.objects.overdue(today).count(),
        'due_today': open_loans.filter(due_date=today).order_by('borrower__username'),
        'recent_loans': open_loans.order_by('-borrowed_date', '-id')[:20],
        'pending_reservations': Reservation.objects.pending().count(),
        'ready_reservations': Reservation.objects.ready().select_related('book', 'user', 'book_copy'),
        'unpaid_fines': Loan.objects.unpaid_fines().aggregate(total=Sum('fine_amount'))['total'] or 0,
        'weekly_borrow_counts': chart_data,
        'weekly_scaled_heights': scaled_heights,
    }
    return render(request, 'circulation/librarian_dashboard.html', context)


@capability_required('view_reports')
def overdue_report(request):
    today = timezone.localdate()
    overdue = Loan.objects.overdue(today).select_related('borrower', 'book_copy__book').order_by('due_date')

    rows = [
        {
            'loan': loan,
            'days_overdue': loan.days_overdue(today),
            'fine': loan.accrued_fine(today),
        }
        for loan in overdue
    ]

    if request.GET.get('format') == 'csv':
        authorize(request.user, 'export_reports')
        logger.info("Overdue report exported by user %s", request.user.pk)
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename="overdue-{today:%Y%m%d}.csv"'
        writer = csv.writer(response)
        writer.writerow(['Borrower', 'Email', 'Title', 'Barcode', 'Due date', 'Days overdue', 'Fine'])
        for row in rows:
            loan = row['loan']
            writer.writerow([
                loan.borrower.get_full_name() or loan.borrower.username,
                loan.borrower.email,
                loan.book_copy.book.title,
                loan.book_copy.barcode,
                loan.due_date.isoformat(),
                row['days_overdue'],
                row['fine'],
            ])
        return response

    context = {
        'rows': rows,
        'total_overdue': len(rows),
        'total_fine': sum((row['fine'] for row in rows), 0),
        'title': 'Overdue Loans Report',
        'can': capabilities(request.user, 'export_reports'),
    }
    return render(request, 'circulation/overdue_report.html', context)
