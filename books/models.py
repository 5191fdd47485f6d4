import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class Category(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Categories"
        ordering = ['name']

    def __str__(self):
        return self.name


class Genre(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Publisher(models.Model):
    name = models.CharField(max_length=200, unique=True)
    country = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Book(models.Model):
    FORMAT_CHOICES = [
        ('hardcover', 'Hardcover'),
        ('paperback', 'Paperback'),
        ('ebook', 'E-book'),
        ('audiobook', 'Audiobook'),
    ]

    title = models.CharField(max_length=255)
    author = models.CharField(max_length=255)
    isbn = models.CharField(max_length=20, unique=True, verbose_name="ISBN")
    description = models.TextField(blank=True)

    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='books'
    )
    publisher = models.ForeignKey(
        Publisher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='books'
    )
    genres = models.ManyToManyField(Genre, blank=True, related_name='books')

    published_date = models.DateField(null=True, blank=True)
    pages = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    language = models.CharField(max_length=50, default='English')
    format = models.CharField(max_length=20, choices=FORMAT_CHOICES, default='paperback')
    price = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    cover_image = models.ImageField(upload_to='book_covers/', blank=True, null=True)
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']
        indexes = [
            models.Index(fields=['title'], name='book_title_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.author})"

    @property
    def total_copies(self):
        return self.copies.count()

    @property
    def available_copies_count(self):
        return self.copies.filter(status=BookCopy.AVAILABLE).count()

    @property
    def status(self):
        available = self.available_copies_count
        if available == 0:
            return "Not Available"
        elif available < self.total_copies:
            return f"{available} available"
        return "Available"


class BookCopy(models.Model):
    AVAILABLE = 'available'
    BORROWED = 'borrowed'
    RESERVED = 'reserved'
    MAINTENANCE = 'maintenance'
    LOST = 'lost'

    STATUS_CHOICES = [
        (AVAILABLE, 'Available'),
        (BORROWED, 'Borrowed'),
        (RESERVED, 'Reserved'),
        (MAINTENANCE, 'Maintenance'),
        (LOST, 'Lost'),
    ]

    CONDITION_CHOICES = [
        ('excellent', 'Excellent'),
        ('good', 'Good'),
        ('fair', 'Fair'),
        ('poor', 'Poor'),
        ('damaged', 'Damaged'),
    ]

    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='copies')
    barcode = models.CharField(max_length=36, unique=True, editable=False)
    call_number = models.CharField(max_length=50, blank=True)
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, default='good')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=AVAILABLE)
    location = models.CharField(max_length=255, blank=True, default='Main Library')
    acquisition_date = models.DateField(null=True, blank=True)
    acquisition_price = models.DecimalField(
        max_digits=8, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    qr_code_url = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['book__title', 'call_number']
        verbose_name = "Book Copy"
        verbose_name_plural = "Book Copies"
        indexes = [
            models.Index(fields=['book', 'status'], name='bookcopy_book_status_idx'),
            models.Index(fields=['status'], name='bookcopy_status_idx'),
        ]

    def __str__(self):
        return f"{self.book.title} [{self.call_number or self.barcode}]"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_barcode = instance.__dict__.get('barcode')
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, '_loaded_barcode', None)
        if loaded and self.barcode != loaded:
            raise ValidationError("A copy's barcode cannot be changed once assigned.")
        if not self.barcode:
            self.barcode = str(uuid.uuid4())
        if not self.call_number:
            self.call_number = self.generate_call_number()
        super().save(*args, **kwargs)
        self._loaded_barcode = self.barcode

    def generate_call_number(self):
        """Build a call number like ``FIC-ORW-003`` from category, author surname and copy ordinal."""
        category = self.book.category.name if self.book.category else 'General'
        surname = self.book.author.split()[-1] if self.book.author.split() else 'UNK'
        ordinal = self.book.copies.count() + 1
        return f"{category[:3].upper()}-{surname[:3].upper()}-{ordinal:03d}"

    def is_available(self):
        return self.status == self.AVAILABLE

    @property
    def current_loan(self):
        return self.loans.filter(status__in=['active', 'overdue']).order_by('-borrowed_date').first()
