from django.contrib.auth import get_user_model
from import_export import resources
from import_export.fields import Field
from import_export.widgets import ForeignKeyWidget

from core.roles import MEMBER, assign_role
from .models import Member


class MemberResource(resources.ModelResource):
    # Members are matched on the account's username, not the profile's primary key
    user = Field(
        column_name='username',
        attribute='user',
        widget=ForeignKeyWidget(get_user_model(), field='username'),
    )
    email = Field(column_name='email', attribute='user__email', readonly=True)
    name = Field(column_name='name', readonly=True)

    class Meta:
        model = Member
        import_id_fields = ('user',)
        fields = (
            'user',
            'name',
            'email',
            'library_card_number',
            'phone',
            'status',
            'membership_type',
            'membership_start_date',
            'membership_expiry_date',
            'date_of_birth',
            'gender',
            'address',
            'max_books_allowed',
            'max_days_allowed',
        )
        export_order = fields
        skip_unchanged = True
        report_skipped = True

    def dehydrate_name(self, member):
        return member.user.get_full_name() if member.user_id else ''

    def before_import_row(self, row, **kwargs):
        # Unknown usernames become new member accounts without a usable password
        username = (row.get('username') or '').strip()
        if not username:
            return
        User = get_user_model()
        user, created = User.objects.get_or_create(
            username=username,
            defaults={'email': (row.get('email') or '').strip()},
        )
        if created:
            first, _, last = (row.get('name') or '').strip().partition(' ')
            user.first_name, user.last_name = first, last
            user.set_unusable_password()
            user.save()
            assign_role(user, MEMBER)
        row['username'] = username
