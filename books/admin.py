from django.contrib import admin
from import_export.admin import ImportExportModelAdmin

from .models import Book, BookCopy, Category, Genre, Publisher
from .resources import BookResource

IN_CIRCULATION = (BookCopy.BORROWED, BookCopy.RESERVED)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'description')
    search_fields = ('name',)


@admin.register(Genre)
class GenreAdmin(admin.ModelAdmin):
    list_display = ('name', 'description')
    search_fields = ('name',)


@admin.register(Publisher)
class PublisherAdmin(admin.ModelAdmin):
    list_display = ('name', 'country')
    search_fields = ('name', 'country')


class BookCopyInline(admin.TabularInline):
    model = BookCopy
    extra = 0
    fields = ('barcode', 'call_number', 'condition', 'status', 'location')
    readonly_fields = ('barcode', 'status')
    # Copies are deleted from the copy admin, which refuses copies in circulation.
    can_delete = False


@admin.register(Book)
class BookAdmin(ImportExportModelAdmin):
    resource_classes = [BookResource]
    list_display = ('title', 'author', 'isbn', 'category', 'publisher', 'format', 'available_copies_count', 'total_copies')
    list_filter = ('category', 'format', 'language', 'genres')
    search_fields = ('title', 'author', 'isbn', 'category__name')
    filter_horizontal = ('genres',)
    inlines = [BookCopyInline]

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.copies.filter(status=BookCopy.BORROWED).exists():
            return False
        return super().has_delete_permission(request, obj)

    def delete_queryset(self, request, queryset):
        on_loan = queryset.filter(copies__status=BookCopy.BORROWED).distinct()
        if on_loan.exists():
            self.message_user(request, f"Skipped {on_loan.count()} book(s) with copies on loan.", level='warning')
        super().delete_queryset(request, queryset.exclude(pk__in=on_loan.values('pk')))

    @admin.display(description="Available")
    def available_copies_count(self, obj):
        return obj.available_copies_count

    @admin.display(description="Copies")
    def total_copies(self, obj):
        return obj.total_copies


@admin.register(BookCopy)
class BookCopyAdmin(admin.ModelAdmin):
    list_display = ('barcode', 'book', 'call_number', 'condition', 'status', 'location')
    list_filter = ('status', 'condition', 'location')
    search_fields = ('barcode', 'call_number', 'book__title', 'book__isbn')
    readonly_fields = ('barcode', 'status', 'created_at', 'updated_at')
    autocomplete_fields = ('book',)

    def has_delete_permission(self, request, obj=None):
        if obj is not None and obj.status in IN_CIRCULATION:
            return False
        return super().has_delete_permission(request, obj)

    def delete_queryset(self, request, queryset):
        held = queryset.filter(status__in=IN_CIRCULATION)
        if held.exists():
            self.message_user(request, f"Skipped {held.count()} borrowed or reserved copy(ies).", level='warning')
        super().delete_queryset(request, queryset.exclude(status__in=IN_CIRCULATION))
