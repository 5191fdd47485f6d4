from django import forms
from django.contrib.auth import get_user_model

from core.roles import ROLE_CHOICES, STAFF_ROLES, LIBRARIAN
from .models import Member, Staff


class AccountForm(forms.ModelForm):
    password = forms.CharField(
        widget=forms.PasswordInput,
        required=False,
        min_length=8,
        help_text="Leave blank to keep the current password"
    )

    class Meta:
        model = get_user_model()
        fields = ['username', 'first_name', 'last_name', 'email']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['email'].required = True
        if self.instance.pk is None:
            self.fields['password'].required = True
            self.fields['password'].help_text = "At least 8 characters"

    def clean_email(self):
        email = self.cleaned_data['email']
        others = get_user_model().objects.filter(email__iexact=email)
        if self.instance.pk:
            others = others.exclude(pk=self.instance.pk)
        if others.exists():
            raise forms.ValidationError("A user with this email already exists.")
        return email

    def user_data(self):
        return {key: self.cleaned_data[key] for key in self.Meta.fields}


class MemberForm(forms.ModelForm):
    class Meta:
        model = Member
        fields = [
            'phone',
            'status',
            'date_of_birth',
            'gender',
            'address',
            'membership_type',
            'membership_start_date',
            'membership_expiry_date',
            'emergency_contact_name',
            'emergency_contact_phone',
            'emergency_contact_relationship',
            'max_books_allowed',
            'max_days_allowed',
            'receive_notifications',
            'receive_newsletters',
            'notes',
        ]
        widgets = {
            'date_of_birth': forms.DateInput(attrs={'type': 'date'}),
            'membership_start_date': forms.DateInput(attrs={'type': 'date'}),
            'membership_expiry_date': forms.DateInput(attrs={'type': 'date'}),
            'address': forms.Textarea(attrs={'rows': 2}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    def clean(self):
        cleaned_data = super().clean()
        start = cleaned_data.get('membership_start_date')
        expiry = cleaned_data.get('membership_expiry_date')
        if start and expiry and expiry <= start:
            self.add_error('membership_expiry_date', "Expiry date must be after the start date.")
        return cleaned_data

    def profile_data(self):
        return {key: self.cleaned_data[key] for key in self.Meta.fields}


class StaffForm(forms.ModelForm):
    role = forms.ChoiceField(
        choices=[choice for choice in ROLE_CHOICES if choice[0] in STAFF_ROLES],
        initial=LIBRARIAN
    )

    class Meta:
        model = Staff
        fields = ['hire_date', 'department', 'position', 'phone', 'work_hours', 'notes']
        widgets = {
            'hire_date': forms.DateInput(attrs={'type': 'date'}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    def clean_work_hours(self):
        hours = self.cleaned_data.get('work_hours') or {}
        if not isinstance(hours, dict):
            raise forms.ValidationError("Work hours must map weekdays to time ranges.")
        normalized = {}
        for day, span in hours.items():
            if day.lower() not in Staff.WEEKDAYS:
                raise forms.ValidationError(f"'{day}' is not a weekday.")
            normalized[day.lower()] = str(span)
        return normalized

    def profile_data(self):
        return {key: self.cleaned_data[key] for key in self.Meta.fields}
