from import_export import resources
from import_export.fields import Field
from import_export.widgets import ForeignKeyWidget, ManyToManyWidget

from .models import Book, Category, Genre, Publisher


class BookResource(resources.ModelResource):
    # Category, publisher and genres travel by name rather than by primary key
    category = Field(
        column_name='category',
        attribute='category',
        widget=ForeignKeyWidget(Category, field='name'),
    )
    publisher = Field(
        column_name='publisher',
        attribute='publisher',
        widget=ForeignKeyWidget(Publisher, field='name'),
    )
    genres = Field(
        column_name='genres',
        attribute='genres',
        widget=ManyToManyWidget(Genre, field='name', separator='|'),
    )

    class Meta:
        model = Book
        import_id_fields = ('isbn',)
        fields = (
            'isbn',
            'title',
            'author',
            'category',
            'publisher',
            'genres',
            'published_date',
            'pages',
            'language',
            'format',
            'price',
            'description',
        )
        export_order = fields
        skip_unchanged = True
        report_skipped = True

    def before_import_row(self, row, **kwargs):
        # Unknown categories and publishers are created on the fly
        category = (row.get('category') or '').strip()
        if category:
            Category.objects.get_or_create(name=category)
        publisher = (row.get('publisher') or '').strip()
        if publisher:
            Publisher.objects.get_or_create(name=publisher)
        for genre in (row.get('genres') or '').split('|'):
            if genre.strip():
                Genre.objects.get_or_create(name=genre.strip())
