from django.contrib import admin
from django.contrib.auth.admin import GroupAdmin
from django.contrib.auth.models import Group

from .roles import ROLE_CAPABILITIES, seed_roles

admin.site.unregister(Group)


@admin.register(Group)
class RoleAdmin(GroupAdmin):
    """
    Groups double as library roles. Role groups can be reset to their
    default capability set from the changelist.
    """
    list_display = ('name', 'is_library_role', 'user_count', 'permission_count')
    actions = ['reset_role_permissions']

    @admin.display(boolean=True, description="Library role")
    def is_library_role(self, obj):
        return obj.name in ROLE_CAPABILITIES

    @admin.display(description="Users")
    def user_count(self, obj):
        return obj.user_set.count()

    @admin.display(description="Permissions")
    def permission_count(self, obj):
        return obj.permissions.count()

    @admin.action(description="Reset library roles to their default permissions")
    def reset_role_permissions(self, request, queryset):
        seed_roles()
        self.message_user(request, f"Reset {len(ROLE_CAPABILITIES)} library role(s).")
