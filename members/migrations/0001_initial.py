import django.db.models.deletion
import django.utils.timezone
import members.models
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Member',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('phone', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('suspended', 'Suspended')], default='active', max_length=20)),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('gender', models.CharField(blank=True, choices=[('male', 'Male'), ('female', 'Female'), ('other', 'Other')], max_length=10)),
                ('address', models.TextField(blank=True)),
                ('library_card_number', models.CharField(blank=True, help_text='Generated automatically when left blank', max_length=20, unique=True)),
                ('membership_start_date', models.DateField(default=django.utils.timezone.localdate)),
                ('membership_expiry_date', models.DateField(default=members.models.one_year_from_today)),
                ('membership_type', models.CharField(choices=[('standard', 'Standard'), ('premium', 'Premium'), ('student', 'Student'), ('senior', 'Senior')], default='standard', max_length=20)),
                ('emergency_contact_name', models.CharField(blank=True, max_length=150)),
                ('emergency_contact_phone', models.CharField(blank=True, max_length=20)),
                ('emergency_contact_relationship', models.CharField(blank=True, max_length=50)),
                ('notes', models.TextField(blank=True)),
                ('max_books_allowed', models.PositiveIntegerField(default=5)),
                ('max_days_allowed', models.PositiveIntegerField(default=14)),
                ('receive_notifications', models.BooleanField(default=True)),
                ('receive_newsletters', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='member_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['user__first_name', 'user__last_name', 'user__username'],
                'indexes': [
                    models.Index(fields=['membership_expiry_date'], name='member_expiry_idx'),
                    models.Index(fields=['status'], name='member_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Staff',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('employee_id', models.CharField(blank=True, help_text='Generated automatically when left blank', max_length=20, unique=True)),
                ('hire_date', models.DateField(default=django.utils.timezone.localdate)),
                ('department', models.CharField(blank=True, max_length=100)),
                ('position', models.CharField(blank=True, max_length=100)),
                ('phone', models.CharField(blank=True, max_length=20)),
                ('work_hours', models.JSONField(blank=True, default=dict, help_text='e.g. {"monday": "9:00-17:00", "saturday": "10:00-14:00"}')),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='staff_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Staff Member',
                'verbose_name_plural': 'Staff',
                'ordering': ['employee_id'],
            },
        ),
    ]
