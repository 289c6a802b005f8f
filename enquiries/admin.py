from django.contrib import admin
from django.contrib.admin import SimpleListFilter
from django.utils import timezone

from core.auth import AuthContext
from .models import Enquiry, EnquiryProduct, EnquiryNote, Communication, EnquiryActivity
from .services import EnquiryLifecycle


class FollowUpFilter(SimpleListFilter):
    """Filter enquiries by follow-up state"""
    title = 'Follow-up'
    parameter_name = 'follow_up'

    def lookups(self, request, model_admin):
        return (
            ('overdue', 'Overdue follow-up'),
            ('scheduled', 'Scheduled'),
            ('none', 'No follow-up'),
        )

    def queryset(self, request, queryset):
        now = timezone.now()
        if self.value() == 'overdue':
            return queryset.filter(follow_up_date__lt=now, status='in_review')
        elif self.value() == 'scheduled':
            return queryset.filter(follow_up_date__gte=now)
        elif self.value() == 'none':
            return queryset.filter(follow_up_date__isnull=True)


class EnquiryProductInline(admin.TabularInline):
    model = EnquiryProduct
    fields = ('product', 'product_name', 'quantity', 'unit', 'notes')
    readonly_fields = fields
    can_delete = False
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False


class EnquiryNoteInline(admin.TabularInline):
    model = EnquiryNote
    fields = ('text', 'author', 'added_at')
    readonly_fields = fields
    can_delete = False
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False


class CommunicationInline(admin.TabularInline):
    model = Communication
    fields = ('channel', 'direction', 'subject', 'handled_by', 'communicated_at')
    readonly_fields = fields
    can_delete = False
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False


class EnquiryActivityInline(admin.TabularInline):
    """Activity trail, written by the lifecycle only"""
    model = EnquiryActivity
    fields = ('activity_type', 'description', 'quotation_no', 'old_status', 'new_status', 'performed_by', 'performed_at')
    readonly_fields = fields
    can_delete = False
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Enquiry)
class EnquiryAdmin(admin.ModelAdmin):
    list_display = [
        'enquiry_no', 'customer_name', 'company', 'status', 'priority',
        'source', 'assigned_to', 'follow_up_date', 'created_at',
    ]
    list_filter = ['status', 'priority', 'source', FollowUpFilter, 'created_at']
    search_fields = ['enquiry_no', 'customer_name', 'company', 'email', 'phone']
    readonly_fields = ['enquiry_no', 'created_at', 'updated_at']

    fieldsets = (
        ('Customer', {
            'fields': ('enquiry_no', 'customer_name', 'company', 'email', 'phone', 'message', 'attachments')
        }),
        ('Workflow', {
            'fields': ('status', 'priority', 'source', 'assigned_to', 'follow_up_date')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    inlines = [EnquiryProductInline, EnquiryNoteInline, CommunicationInline, EnquiryActivityInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('assigned_to')

    def save_model(self, request, obj, form, change):
        """Status changes go through the lifecycle so they land in the activity trail"""
        new_status = obj.status
        if change and 'status' in form.changed_data:
            obj.status = form.initial['status']
        super().save_model(request, obj, form, change)
        if obj.status != new_status:
            EnquiryLifecycle().set_status(obj, new_status, AuthContext.from_user(request.user))
