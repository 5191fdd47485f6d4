from django import forms
from django.utils import timezone

from .models import Book, BookCopy, Category, Genre, Publisher


class BookForm(forms.ModelForm):
    class Meta:
        model = Book
        fields = [
            'title',
            'author',
            'isbn',
            'genres',
            'category',
            'publisher',
            'published_date',
            'format',
            'pages',
            'language',
            'price',
            'description',
            'cover_image',
        ]
        widgets = {
            'description': forms.Textarea(attrs={'rows': 4}),
            'published_date': forms.DateInput(attrs={'type': 'date'}),
            'genres': forms.CheckboxSelectMultiple,
        }
        error_messages = {
            'isbn': {'unique': "This ISBN already exists in the library."},
        }

    def clean_published_date(self):
        published = self.cleaned_data.get('published_date')
        if published and published > timezone.localdate():
            raise forms.ValidationError("Publication date cannot be in the future.")
        return published

    def clean_cover_image(self):
        image = self.cleaned_data.get('cover_image')
        if image and hasattr(image, 'size') and image.size > 10 * 1024 * 1024:
            raise forms.ValidationError("Cover image size must not exceed 10MB.")
        return image


class BookCopyForm(forms.ModelForm):
    class Meta:
        model = BookCopy
        fields = [
            'call_number',
            'condition',
            'status',
            'location',
            'acquisition_date',
            'acquisition_price',
            'notes',
        ]
        widgets = {
            'acquisition_date': forms.DateInput(attrs={'type': 'date'}),
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    # Borrowed and reserved states belong to loans and reservations.
    CIRCULATION_STATUSES = (BookCopy.BORROWED, BookCopy.RESERVED)

    def clean_status(self):
        status = self.cleaned_data['status']
        current = self.instance.status if self.instance.pk else BookCopy.AVAILABLE
        if status == current:
            return status
        if current in self.CIRCULATION_STATUSES:
            raise forms.ValidationError(
                f"This copy is {current}; return the loan or release the reservation first."
            )
        if status in self.CIRCULATION_STATUSES:
            raise forms.ValidationError("Use a loan or reservation to mark a copy as borrowed or reserved.")
        return status


class CategoryForm(forms.ModelForm):
    class Meta:
        model = Category
        fields = ['name', 'description']


class GenreForm(forms.ModelForm):
    class Meta:
        model = Genre
        fields = ['name', 'description']


class PublisherForm(forms.ModelForm):
    class Meta:
        model = Publisher
        fields = ['name', 'country', 'description']
