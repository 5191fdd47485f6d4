import circulation.models
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('books', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Loan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('borrowed_date', models.DateField(default=django.utils.timezone.localdate, verbose_name='Date Borrowed')),
                ('due_date', models.DateField(verbose_name='Due Date')),
                ('returned_date', models.DateField(blank=True, null=True, verbose_name='Date Returned')),
                ('status', models.CharField(choices=[('active', 'Active'), ('overdue', 'Overdue'), ('returned', 'Returned'), ('lost', 'Lost')], default='active', max_length=20, verbose_name='Status')),
                ('fine_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=8, verbose_name='Fine')),
                ('fine_paid', models.BooleanField(default=False, verbose_name='Fine Paid?')),
                ('renewal_count', models.PositiveIntegerField(default=0, verbose_name='Renewal Count')),
                ('max_renewals', models.PositiveIntegerField(default=circulation.models.default_max_renewals, verbose_name='Max Renewals Allowed')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('book_copy', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='loans', to='books.bookcopy', verbose_name='Copy')),
                ('borrower', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to=settings.AUTH_USER_MODEL, verbose_name='Borrower')),
                ('issued_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='issued_loans', to=settings.AUTH_USER_MODEL, verbose_name='Issued By')),
            ],
            options={
                'ordering': ['-borrowed_date', '-id'],
                'permissions': [
                    ('return_loan', 'Can return loans'),
                    ('view_fines', 'Can view fines'),
                    ('collect_fine', 'Can collect fines'),
                    ('waive_fine', 'Can waive fines'),
                    ('view_reports', 'Can view reports'),
                    ('export_reports', 'Can export reports'),
                ],
                'indexes': [
                    models.Index(fields=['borrower', 'status'], name='loan_borrower_status_idx'),
                    models.Index(fields=['book_copy', 'returned_date'], name='loan_copy_returned_idx'),
                    models.Index(fields=['due_date'], name='loan_due_date_idx'),
                    models.Index(fields=['status'], name='loan_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['active', 'overdue'])), fields=('book_copy',), name='one_open_loan_per_copy'),
                    models.CheckConstraint(condition=models.Q(('due_date__gte', models.F('borrowed_date'))), name='loan_due_after_borrowed'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Reservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reserved_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('expiry_date', models.DateField(default=circulation.models.default_expiry_date)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('ready', 'Ready for pickup'), ('fulfilled', 'Fulfilled'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('notified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('book', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='books.book')),
                ('book_copy', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reservations', to='books.bookcopy', verbose_name='Held Copy')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to=settings.AUTH_USER_MODEL, verbose_name='Reserved By')),
            ],
            options={
                'ordering': ['reserved_date', 'id'],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='reservation_user_status_idx'),
                    models.Index(fields=['book', 'status'], name='reservation_book_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'ready')), fields=('book_copy',), name='one_ready_reservation_per_copy'),
                ],
            },
        ),
    ]
