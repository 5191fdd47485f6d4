from django.contrib import admin
from import_export.admin import ImportExportModelAdmin

from .models import Member, Staff
from .resources import MemberResource


@admin.register(Member)
class MemberAdmin(ImportExportModelAdmin):
    resource_classes = [MemberResource]
    list_display = (
        'library_card_number',
        'user',
        'membership_type',
        'status',
        'membership_expiry_date',
        'active_loan_count',
        'max_books_allowed',
    )
    list_filter = ('status', 'membership_type', 'membership_expiry_date')
    search_fields = ('library_card_number', 'user__username', 'user__email', 'user__first_name', 'user__last_name', 'phone')
    raw_id_fields = ('user',)
    readonly_fields = ('library_card_number', 'created_at', 'updated_at')
    actions = ['suspend_members', 'reactivate_members']

    @admin.display(description="On loan")
    def active_loan_count(self, obj):
        return obj.active_loans.count()

    @admin.action(description="Suspend selected members")
    def suspend_members(self, request, queryset):
        updated = queryset.update(status=Member.SUSPENDED)
        self.message_user(request, f"Suspended {updated} member(s).")

    @admin.action(description="Reactivate selected members")
    def reactivate_members(self, request, queryset):
        updated = queryset.update(status=Member.ACTIVE)
        self.message_user(request, f"Reactivated {updated} member(s).")


@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ('employee_id', 'user', 'department', 'position', 'hire_date', 'service_duration')
    list_filter = ('department', 'position')
    search_fields = ('employee_id', 'user__username', 'user__email', 'department', 'position')
    raw_id_fields = ('user',)
    readonly_fields = ('employee_id', 'created_at', 'updated_at')

    @admin.display(description="Service")
    def service_duration(self, obj):
        return obj.service_duration
