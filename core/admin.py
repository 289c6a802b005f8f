from django.contrib import admin

from .models import StaffProfile, ReferenceCounter


@admin.register(StaffProfile)
class StaffProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'department', 'updated_at']
    list_filter = ['role', 'department']
    search_fields = ['user__username', 'user__email', 'user__first_name', 'user__last_name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(ReferenceCounter)
class ReferenceCounterAdmin(admin.ModelAdmin):
    """Read-only view of the reference number counters"""
    list_display = ['key', 'value', 'updated_at']
    search_fields = ['key']
    readonly_fields = ['key', 'value', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
