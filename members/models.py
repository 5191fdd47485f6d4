from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Max, Sum
from django.utils import timezone


def one_year_from_today():
    return timezone.localdate() + timedelta(days=365)


def _months_between(start, end):
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


class Member(models.Model):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    SUSPENDED = 'suspended'

    STATUS_CHOICES = [
        (ACTIVE, 'Active'),
        (INACTIVE, 'Inactive'),
        (SUSPENDED, 'Suspended'),
    ]

    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]

    MEMBERSHIP_CHOICES = [
        ('standard', 'Standard'),
        ('premium', 'Premium'),
        ('student', 'Student'),
        ('senior', 'Senior'),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='member_profile'
    )
    phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    address = models.TextField(blank=True)
    library_card_number = models.CharField(
        max_length=20,
        unique=True,
        blank=True,
        help_text="Generated automatically when left blank"
    )
    membership_start_date = models.DateField(default=timezone.localdate)
    membership_expiry_date = models.DateField(default=one_year_from_today)
    membership_type = models.CharField(max_length=20, choices=MEMBERSHIP_CHOICES, default='standard')
    emergency_contact_name = models.CharField(max_length=150, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    emergency_contact_relationship = models.CharField(max_length=50, blank=True)
    notes = models.TextField(blank=True)
    max_books_allowed = models.PositiveIntegerField(default=5)
    max_days_allowed = models.PositiveIntegerField(default=14)
    receive_notifications = models.BooleanField(default=True)
    receive_newsletters = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['user__first_name', 'user__last_name', 'user__username']
        indexes = [
            models.Index(fields=['membership_expiry_date'], name='member_expiry_idx'),
            models.Index(fields=['status'], name='member_status_idx'),
        ]

    def __str__(self):
        return f"{self.user.get_full_name() or self.user.username} ({self.library_card_number})"

    def save(self, *args, **kwargs):
        if not self.library_card_number:
            self.library_card_number = self.next_card_number()
        super().save(*args, **kwargs)

    @classmethod
    def next_card_number(cls):
        last_id = cls.objects.aggregate(last=Max('id'))['last'] or 0
        return f"LIB{last_id + 1:06d}"

    def is_membership_expired(self, today=None):
        today = today or timezone.localdate()
        return self.membership_expiry_date < today

    def days_until_expiry(self, today=None):
        today = today or timezone.localdate()
        return (self.membership_expiry_date - today).days

    @property
    def age(self):
        if not self.date_of_birth:
            return None
        today = timezone.localdate()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    @property
    def emergency_contact(self):
        if not self.emergency_contact_name:
            return None
        contact = self.emergency_contact_name
        if self.emergency_contact_phone:
            contact += f" ({self.emergency_contact_phone})"
        if self.emergency_contact_relationship:
            contact += f" - {self.emergency_contact_relationship}"
        return contact

    @property
    def active_loans(self):
        return self.user.loans.open()

    def overdue_loans(self, today=None):
        return self.user.loans.overdue(today)

    def can_borrow_more(self):
        return self.active_loans.count() < self.max_books_allowed

    @property
    def remaining_books(self):
        return max(0, self.max_books_allowed - self.active_loans.count())

    @property
    def total_unpaid_fines(self):
        return self.user.loans.unpaid_fines().aggregate(total=Sum('fine_amount'))['total'] or 0


class Staff(models.Model):
    WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='staff_profile'
    )
    employee_id = models.CharField(
        max_length=20,
        unique=True,
        blank=True,
        help_text="Generated automatically when left blank"
    )
    hire_date = models.DateField(default=timezone.localdate)
    department = models.CharField(max_length=100, blank=True)
    position = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    work_hours = models.JSONField(
        default=dict,
        blank=True,
        help_text='e.g. {"monday": "9:00-17:00", "saturday": "10:00-14:00"}'
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['employee_id']
        verbose_name = "Staff Member"
        verbose_name_plural = "Staff"

    def __str__(self):
        return f"{self.user.get_full_name() or self.user.username} ({self.employee_id})"

    def save(self, *args, **kwargs):
        if not self.employee_id:
            self.employee_id = self.next_employee_id()
        super().save(*args, **kwargs)

    @classmethod
    def next_employee_id(cls):
        last_id = cls.objects.aggregate(last=Max('id'))['last'] or 0
        return f"EMP{last_id + 1:05d}"

    @property
    def months_of_service(self):
        if not self.hire_date:
            return 0
        return _months_between(self.hire_date, timezone.localdate())

    @property
    def years_of_service(self):
        return self.months_of_service // 12

    @property
    def service_duration(self):
        if not self.hire_date:
            return 'N/A'
        years = self.years_of_service
        months = self.months_of_service % 12
        year_text = f"{years} {'year' if years == 1 else 'years'}"
        month_text = f"{months} {'month' if months == 1 else 'months'}"
        if years == 0:
            return month_text
        if months == 0:
            return year_text
        return f"{year_text}, {month_text}"

    def works_on(self, day):
        return isinstance(self.work_hours, dict) and day.lower() in self.work_hours

    def work_hours_for(self, day):
        if not self.works_on(day):
            return None
        return self.work_hours[day.lower()]

    @property
    def total_loans_processed(self):
        return self.user.issued_loans.count()

    @property
    def total_returns_processed(self):
        return self.user.issued_loans.filter(returned_date__isnull=False).count()
