from django import forms
from django.contrib.auth import get_user_model
from django.utils import timezone

from books.models import Book, BookCopy


class LoanForm(forms.Form):
    borrower = forms.ModelChoiceField(
        queryset=get_user_model().objects.filter(is_active=True).order_by('username'),
        help_text="Member borrowing the copy"
    )
    book_copy = forms.ModelChoiceField(
        queryset=BookCopy.objects.none(),
        label="Copy",
        help_text="Only copies currently on the shelf are listed"
    )
    borrowed_date = forms.DateField(
        initial=timezone.localdate,
        widget=forms.DateInput(attrs={'type': 'date'})
    )
    due_date = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'type': 'date'}),
        help_text="Leave blank to use the member's loan period"
    )
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3}))

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['book_copy'].queryset = BookCopy.objects.select_related('book').filter(
            status=BookCopy.AVAILABLE
        )

    def clean(self):
        cleaned_data = super().clean()
        borrowed = cleaned_data.get('borrowed_date')
        due = cleaned_data.get('due_date')
        if borrowed and due and due < borrowed:
            self.add_error('due_date', "Due date must be on or after the borrowed date.")
        return cleaned_data


class ReturnForm(forms.Form):
    returned_date = forms.DateField(
        initial=timezone.localdate,
        widget=forms.DateInput(attrs={'type': 'date'})
    )
    condition_notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 3}),
        help_text="Condition of the copy on return (optional)"
    )

    def __init__(self, *args, loan=None, **kwargs):
        self.loan = loan
        super().__init__(*args, **kwargs)

    def clean_returned_date(self):
        returned = self.cleaned_data['returned_date']
        if self.loan is not None and returned < self.loan.borrowed_date:
            raise forms.ValidationError("Returned date cannot be before the borrowed date.")
        return returned


class RenewForm(forms.Form):
    days = forms.IntegerField(min_value=1, max_value=90, required=False,
                              help_text="Days to extend by; defaults to the standard loan period")


class ReservationForm(forms.Form):
    book = forms.ModelChoiceField(queryset=Book.objects.order_by('title'))
    user = forms.ModelChoiceField(
        queryset=get_user_model().objects.filter(is_active=True).order_by('username'),
        required=False,
        label="Reserve for",
        help_text="Leave blank to reserve for yourself"
    )


class PromoteForm(forms.Form):
    book_copy = forms.ModelChoiceField(queryset=BookCopy.objects.none(), label="Copy to hold")

    def __init__(self, *args, reservation=None, **kwargs):
        super().__init__(*args, **kwargs)
        copies = BookCopy.objects.filter(status=BookCopy.AVAILABLE)
        if reservation is not None:
            copies = copies.filter(book_id=reservation.book_id)
        self.fields['book_copy'].queryset = copies
