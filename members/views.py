from django.contrib import messages
from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.db.models import Count, Q, Sum
from django.shortcuts import render, redirect, get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_POST

from circulation.models import Loan
from core.policies import capability_required, capabilities
from core.roles import ROLE_CHOICES, STAFF_ROLES, role_of
from . import services
from .forms import AccountForm, MemberForm, StaffForm
from .models import Member, Staff


def _report_errors(request, form, error):
    # Model validation errors go back onto the form where they belong.
    if hasattr(error, 'error_dict'):
        for field, errors in error.message_dict.items():
            form.add_error(field if field in form.fields else None, errors)
    else:
        form.add_error(None, error)
    messages.error(request, "Please correct the errors below.")


OPEN_LOANS = Q(user__loans__returned_date__isnull=True, user__loans__status__in=Loan.OPEN_STATUSES)


@capability_required('view_users')
def member_list(request):
    today = timezone.localdate()
    members = Member.objects.select_related('user').annotate(
        active_loan_count=Count('user__loans', filter=OPEN_LOANS, distinct=True),
        overdue_loan_count=Count('user__loans', filter=OPEN_LOANS & Q(user__loans__due_date__lt=today), distinct=True),
    )

    query = request.GET.get('search', '').strip()
    if query:
        members = members.filter(
            Q(user__username__icontains=query) |
            Q(user__first_name__icontains=query) |
            Q(user__last_name__icontains=query) |
            Q(user__email__icontains=query) |
            Q(phone__icontains=query) |
            Q(library_card_number__icontains=query)
        )

    status = request.GET.get('status')
    if status and status != 'all':
        members = members.filter(status=status)

    has_overdue = request.GET.get('has_overdue')
    if has_overdue == 'yes':
        members = members.filter(overdue_loan_count__gt=0)
    elif has_overdue == 'no':
        members = members.filter(overdue_loan_count=0)

    page = Paginator(members.order_by('-created_at'), 15).get_page(request.GET.get('page'))

    context = {
        'members': page,
        'query': query,
        'status_options': Member.STATUS_CHOICES,
        'filters': {key: request.GET.get(key, '') for key in ('status', 'has_overdue')},
        'can': capabilities(request.user, 'create_users', 'edit_users', 'delete_users'),
    }
    return render(request, 'members/member_list.html', context)


@capability_required('create_users')
def member_create(request):
    if request.method == 'POST':
        account_form = AccountForm(request.POST)
        profile_form = MemberForm(request.POST)
        if account_form.is_valid() and profile_form.is_valid():
            try:
                member = services.create_member(
                    account_form.user_data(),
                    profile_form.profile_data(),
                    password=account_form.cleaned_data['password'],
                )
            except ValidationError as e:
                _report_errors(request, profile_form, e)
            else:
                messages.success(request, f"Member created. Library card: {member.library_card_number}")
                return redirect('members:member_detail', member_id=member.id)
    else:
        account_form = AccountForm()
        profile_form = MemberForm()

    context = {'account_form': account_form, 'profile_form': profile_form, 'title': 'Add Member'}
    return render(request, 'members/member_form.html', context)


@capability_required('view_users')
def member_detail(request, member_id):
    member = get_object_or_404(Member.objects.select_related('user'), id=member_id)
    loans = member.user.loans.select_related('book_copy__book')
    today = timezone.localdate()

    context = {
        'member': member,
        'open_loans': loans.open().order_by('due_date'),
        'recent_loans': loans.order_by('-borrowed_date', '-id')[:10],
        'overdue_count': loans.overdue(today).count(),
        'total_loans': loans.count(),
        'reservations': member.user.reservations.active().select_related('book'),
        'today': today,
        'can': capabilities(request.user, 'edit_users', 'delete_users', 'create_loans'),
    }
    return render(request, 'members/member_detail.html', context)


@capability_required('edit_users')
def member_update(request, member_id):
    member = get_object_or_404(Member.objects.select_related('user'), id=member_id)
    if request.method == 'POST':
        account_form = AccountForm(request.POST, instance=member.user)
        profile_form = MemberForm(request.POST, instance=member)
        if account_form.is_valid() and profile_form.is_valid():
            try:
                services.update_member(
                    member,
                    account_form.user_data(),
                    profile_form.profile_data(),
                    password=account_form.cleaned_data['password'],
                )
            except ValidationError as e:
                _report_errors(request, profile_form, e)
            else:
                messages.success(request, "Member updated successfully.")
                return redirect('members:member_detail', member_id=member.id)
    else:
        account_form = AccountForm(instance=member.user)
        profile_form = MemberForm(instance=member)

    context = {
        'account_form': account_form,
        'profile_form': profile_form,
        'member': member,
        'title': 'Edit Member',
    }
    return render(request, 'members/member_form.html', context)


@require_POST
@capability_required('delete_users')
def member_delete(request, member_id):
    member = get_object_or_404(Member.objects.select_related('user'), id=member_id)
    if member.user_id == request.user.id:
        messages.error(request, "You cannot delete your own account.")
        return redirect('members:member_detail', member_id=member.id)
    try:
        services.delete_member(member)
    except ValidationError as e:
        messages.error(request, e.messages[0])
        return redirect('members:member_detail', member_id=member.id)
    messages.success(request, "Member deleted successfully.")
    return redirect('members:member_list')


# ────────────────────────────────────────────────
#   Staff
# ────────────────────────────────────────────────

@capability_required('view_users')
def staff_list(request):
    staff = Staff.objects.select_related('user').prefetch_related('user__groups').annotate(
        loans_processed=Count('user__issued_loans', distinct=True),
    )

    query = request.GET.get('search', '').strip()
    if query:
        staff = staff.filter(
            Q(user__username__icontains=query) |
            Q(user__first_name__icontains=query) |
            Q(user__last_name__icontains=query) |
            Q(user__email__icontains=query) |
            Q(employee_id__icontains=query) |
            Q(department__icontains=query) |
            Q(position__icontains=query)
        )

    role = request.GET.get('role')
    if role and role != 'all':
        staff = staff.filter(user__groups__name=role)

    department = request.GET.get('department')
    if department and department != 'all':
        staff = staff.filter(department=department)

    page = Paginator(staff.order_by('employee_id'), 15).get_page(request.GET.get('page'))

    context = {
        'staff_members': page,
        'query': query,
        'role_options': [choice for choice in ROLE_CHOICES if choice[0] in STAFF_ROLES],
        'departments': Staff.objects.exclude(department='').values_list('department', flat=True).distinct().order_by('department'),
        'filters': {key: request.GET.get(key, '') for key in ('role', 'department')},
        'can': capabilities(request.user, 'create_users', 'edit_users', 'delete_users'),
    }
    return render(request, 'members/staff_list.html', context)


@capability_required('create_users')
def staff_create(request):
    if request.method == 'POST':
        account_form = AccountForm(request.POST)
        profile_form = StaffForm(request.POST)
        if account_form.is_valid() and profile_form.is_valid():
            try:
                staff = services.create_staff(
                    account_form.user_data(),
                    profile_form.profile_data(),
                    password=account_form.cleaned_data['password'],
                    role=profile_form.cleaned_data['role'],
                )
            except ValidationError as e:
                _report_errors(request, profile_form, e)
            else:
                messages.success(request, f"Staff member created. Employee ID: {staff.employee_id}")
                return redirect('members:staff_detail', staff_id=staff.id)
    else:
        account_form = AccountForm()
        profile_form = StaffForm()

    context = {'account_form': account_form, 'profile_form': profile_form, 'title': 'Add Staff Member'}
    return render(request, 'members/staff_form.html', context)


@capability_required('view_users')
def staff_detail(request, staff_id):
    staff = get_object_or_404(Staff.objects.select_related('user'), id=staff_id)
    issued = staff.user.issued_loans.select_related('book_copy__book', 'borrower')

    context = {
        'staff': staff,
        'role': role_of(staff.user),
        'recent_loans': issued.order_by('-borrowed_date', '-id')[:10],
        'fines_collected': issued.filter(fine_paid=True).aggregate(total=Sum('fine_amount'))['total'] or 0,
        'can': capabilities(request.user, 'edit_users', 'delete_users'),
    }
    return render(request, 'members/staff_detail.html', context)


@capability_required('edit_users')
def staff_update(request, staff_id):
    staff = get_object_or_404(Staff.objects.select_related('user'), id=staff_id)
    if request.method == 'POST':
        account_form = AccountForm(request.POST, instance=staff.user)
        profile_form = StaffForm(request.POST, instance=staff)
        if account_form.is_valid() and profile_form.is_valid():
            try:
                services.update_staff(
                    staff,
                    account_form.user_data(),
                    profile_form.profile_data(),
                    password=account_form.cleaned_data['password'],
                    role=profile_form.cleaned_data['role'],
                )
            except ValidationError as e:
                _report_errors(request, profile_form, e)
            else:
                messages.success(request, "Staff member updated successfully.")
                return redirect('members:staff_detail', staff_id=staff.id)
    else:
        account_form = AccountForm(instance=staff.user)
        profile_form = StaffForm(instance=staff, initial={'role': role_of(staff.user)})

    context = {
        'account_form': account_form,
        'profile_form': profile_form,
        'staff': staff,
        'title': 'Edit Staff Member',
    }
    return render(request, 'members/staff_form.html', context)


@require_POST
@capability_required('delete_users')
def staff_delete(request, staff_id):
    staff = get_object_or_404(Staff.objects.select_related('user'), id=staff_id)
    if staff.user_id == request.user.id:
        messages.error(request, "You cannot delete your own account.")
        return redirect('members:staff_detail', staff_id=staff.id)
    try:
        services.delete_staff(staff)
    except ValidationError as e:
        messages.error(request, e.messages[0])
        return redirect('members:staff_detail', staff_id=staff.id)
    messages.success(request, "Staff member deleted successfully.")
    return redirect('members:staff_list')
