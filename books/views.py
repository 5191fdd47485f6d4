import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.paginator import Paginator
from django.db.models import Count, Q
from django.http import Http404, JsonResponse
from django.shortcuts import render, redirect, get_object_or_404
from django.views.decorators.http import require_POST

from core.policies import authorize, capability_required, capabilities
from .forms import BookForm, BookCopyForm, CategoryForm, GenreForm, PublisherForm
from .models import Book, BookCopy, Category, Genre, Publisher

logger = logging.getLogger(__name__)

BOOK_SORTS = ('created_at', 'title', 'published_date')


@capability_required('view_books')
def book_list(request):
    query = request.GET.get('search', '').strip()
    books = Book.objects.select_related('category', 'publisher').prefetch_related('genres')

    if query:
        books = books.filter(
            Q(title__icontains=query) |
            Q(author__icontains=query) |
            Q(isbn__icontains=query)
        )

    genre = request.GET.get('genre')
    if genre and genre != 'all':
        books = books.filter(genres__id=genre)

    category = request.GET.get('category')
    if category and category != 'all':
        books = books.filter(category_id=category)

    book_format = request.GET.get('format')
    if book_format and book_format != 'all':
        books = books.filter(format=book_format)

    language = request.GET.get('language')
    if language and language != 'all':
        books = books.filter(language=language)

    sort_by = request.GET.get('sort_by')
    if sort_by not in BOOK_SORTS:
        sort_by = 'created_at'
    prefix = '' if request.GET.get('sort_order') == 'asc' else '-'
    books = books.order_by(f'{prefix}{sort_by}').distinct()

    page = Paginator(books, 12).get_page(request.GET.get('page'))

    context = {
        'books': page,
        'query': query,
        'genres': Genre.objects.all(),
        'categories': Category.objects.all(),
        'format_options': Book.FORMAT_CHOICES,
        'language_options': Book.objects.values_list('language', flat=True).distinct().order_by('language'),
        'filters': {key: request.GET.get(key, '') for key in ('genre', 'category', 'format', 'language', 'sort_by', 'sort_order')},
        'can': capabilities(request.user, 'create_books', 'edit_books', 'delete_books'),
    }
    return render(request, 'books/list.html', context)


@capability_required('view_books')
def book_detail(request, book_id):
    book = get_object_or_404(
        Book.objects.select_related('category', 'publisher').prefetch_related('genres'),
        id=book_id
    )
    copies = book.copies.order_by('-created_at')
    context = {
        'book': book,
        'copies': copies,
        'copy_form': BookCopyForm(),
        'pending_reservations': book.reservations.filter(status='pending').order_by('reserved_date', 'id'),
        'can': capabilities(
            request.user, 'edit_books', 'delete_books', 'create_book_copies',
            'edit_book_copies', 'delete_book_copies', 'create_loans',
        ),
    }
    return render(request, 'books/detail.html', context)


@capability_required('create_books')
def book_create(request):
    if request.method == 'POST':
        form = BookForm(request.POST, request.FILES)
        if form.is_valid():
            book = form.save()
            logger.info("Book %s created: %s", book.pk, book.title)
            messages.success(request, 'Book created successfully!')
            return redirect('books:book_list')
    else:
        form = BookForm()
    return render(request, 'books/form.html', {'form': form, 'title': 'Add Book'})


@capability_required('edit_books')
def book_update(request, book_id):
    book = get_object_or_404(Book, id=book_id)
    if request.method == 'POST':
        old_cover = book.cover_image.name if book.cover_image else None
        form = BookForm(request.POST, request.FILES, instance=book)
        if form.is_valid():
            book = form.save()
            if old_cover and 'cover_image' in form.changed_data:
                book.cover_image.storage.delete(old_cover)
            messages.success(request, 'Book updated successfully.')
            return redirect('books:book_detail', book_id=book.id)
    else:
        form = BookForm(instance=book)
    return render(request, 'books/form.html', {'form': form, 'book': book, 'title': 'Edit Book'})


@require_POST
@capability_required('delete_books')
def book_delete(request, book_id):
    book = get_object_or_404(Book, id=book_id)
    if book.copies.filter(status=BookCopy.BORROWED).exists():
        messages.error(request, 'Cannot delete a book while any of its copies is on loan.')
        return redirect('books:book_detail', book_id=book.id)
    if book.cover_image:
        book.cover_image.delete(save=False)
    book.delete()
    logger.info("Book %s deleted", book_id)
    messages.success(request, 'Book deleted successfully.')
    return redirect('books:book_list')


@require_POST
@capability_required('create_book_copies')
def copy_create(request, book_id):
    book = get_object_or_404(Book, id=book_id)
    copy = BookCopy(book=book)

    condition = request.POST.get('condition')
    if condition in dict(BookCopy.CONDITION_CHOICES):
        copy.condition = condition
    location = request.POST.get('location', '').strip()
    if location:
        copy.location = location

    copy.save()
    logger.info("Copy %s added to book %s", copy.barcode, book.pk)
    messages.success(request, 'Book copy added successfully!')
    return redirect('books:book_detail', book_id=book.id)


@capability_required('edit_book_copies')
def copy_update(request, book_id, copy_id):
    copy = get_object_or_404(BookCopy, id=copy_id, book_id=book_id)
    if request.method == 'POST':
        form = BookCopyForm(request.POST, instance=copy)
        if form.is_valid():
            form.save()
            messages.success(request, 'Book copy updated successfully!')
            return redirect('books:book_detail', book_id=book_id)
    else:
        form = BookCopyForm(instance=copy)
    return render(request, 'books/copy_form.html', {'form': form, 'copy': copy})


@require_POST
@capability_required('delete_book_copies')
def copy_delete(request, book_id, copy_id):
    copy = get_object_or_404(BookCopy, id=copy_id, book_id=book_id)
    if copy.status in (BookCopy.BORROWED, BookCopy.RESERVED):
        messages.error(request, f'Cannot delete a {copy.status} copy!')
        return redirect('books:book_detail', book_id=book_id)
    copy.delete()
    messages.success(request, 'Book copy deleted successfully!')
    return redirect('books:book_detail', book_id=book_id)


@capability_required('view_book_copies')
def scan_barcode(request, barcode):
    copy = get_object_or_404(BookCopy, barcode=barcode)
    return redirect('books:book_detail', book_id=copy.book_id)


@login_required
def copy_search(request):
    """JSON lookup of available copies for the loan form."""
    query = request.GET.get('q', '').strip()
    if len(query) < 2:
        return JsonResponse({'data': []})

    copies = BookCopy.objects.select_related('book').filter(
        status=BookCopy.AVAILABLE
    ).filter(
        Q(barcode__icontains=query) |
        Q(call_number__icontains=query) |
        Q(book__title__icontains=query) |
        Q(book__author__icontains=query) |
        Q(book__isbn__icontains=query)
    )[:20]

    return JsonResponse({
        'data': [
            {
                'id': c.id,
                'barcode': c.barcode,
                'call_number': c.call_number,
                'condition': c.condition,
                'location': c.location,
                'book': {
                    'id': c.book.id,
                    'title': c.book.title,
                    'author': c.book.author,
                    'isbn': c.book.isbn,
                },
            }
            for c in copies
        ]
    })


# ────────────────────────────────────────────────
#   Reference data: categories, genres, publishers
# ────────────────────────────────────────────────

REFERENCE_MODELS = {
    'categories': (Category, CategoryForm),
    'genres': (Genre, GenreForm),
    'publishers': (Publisher, PublisherForm),
}


def _reference_or_404(kind):
    if kind not in REFERENCE_MODELS:
        raise Http404(f"Unknown reference list: {kind}")
    return REFERENCE_MODELS[kind]


@login_required
def reference_list(request, kind):
    model, form_class = _reference_or_404(kind)
    authorize(request.user, f'view_{kind}')

    query = request.GET.get('search', '').strip()
    items = model.objects.annotate(book_count=Count('books'))
    if query:
        items = items.filter(name__icontains=query)

    context = {
        'kind': kind,
        'title': model._meta.verbose_name_plural.title(),
        'items': items,
        'form': form_class(),
        'query': query,
        'can': capabilities(request.user, f'create_{kind}', f'edit_{kind}', f'delete_{kind}'),
    }
    return render(request, 'books/reference_list.html', context)


@require_POST
@login_required
def reference_create(request, kind):
    model, form_class = _reference_or_404(kind)
    authorize(request.user, f'create_{kind}')

    form = form_class(request.POST)
    if form.is_valid():
        item = form.save()
        messages.success(request, f"{model._meta.verbose_name.title()} '{item.name}' created.")
    else:
        for errors in form.errors.values():
            for error in errors:
                messages.error(request, error)
    return redirect('books:reference_list', kind=kind)


@login_required
def reference_update(request, kind, item_id):
    model, form_class = _reference_or_404(kind)
    authorize(request.user, f'edit_{kind}')

    item = get_object_or_404(model, id=item_id)
    if request.method == 'POST':
        form = form_class(request.POST, instance=item)
        if form.is_valid():
            form.save()
            messages.success(request, f"{model._meta.verbose_name.title()} updated.")
            return redirect('books:reference_list', kind=kind)
    else:
        form = form_class(instance=item)
    return render(request, 'books/reference_form.html', {'form': form, 'item': item, 'kind': kind})


@require_POST
@login_required
def reference_delete(request, kind, item_id):
    model, form_class = _reference_or_404(kind)
    authorize(request.user, f'delete_{kind}')

    item = get_object_or_404(model, id=item_id)
    if kind != 'genres' and item.books.exists():
        messages.error(request, f"Cannot delete {model._meta.verbose_name} assigned to books.")
        return redirect('books:reference_list', kind=kind)
    item.delete()
    messages.success(request, f"{model._meta.verbose_name.title()} deleted.")
    return redirect('books:reference_list', kind=kind)
