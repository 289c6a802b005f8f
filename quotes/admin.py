# quotes/admin.py
"""
Django Admin Interface for Quotations

Status changes are only made through the bulk actions, which go through
QuotationLifecycle so the parent enquiry is updated exactly as it is from
the API. Lines, notes and revision history are read-only here.
"""

from django.contrib import admin, messages
from django.utils.html import format_html

from core.auth import AuthContext
from core.exceptions import WorkflowError
from .models import Quotation, QuotationItem, QuotationRevision, QuotationNote
from .services import QuotationLifecycle


class QuotationItemInline(admin.TabularInline):
    """Lines change through QuotationLifecycle.update, which records a revision"""
    model = QuotationItem
    extra = 0
    fields = ['product', 'product_name', 'quantity', 'unit', 'unit_price', 'discount_percent', 'delivery_time']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class QuotationRevisionInline(admin.TabularInline):
    """Revision history is written by the lifecycle only"""
    model = QuotationRevision
    extra = 0
    fields = ['revision_no', 'modified_at', 'modified_by', 'changes']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class QuotationNoteInline(admin.TabularInline):
    model = QuotationNote
    extra = 0
    fields = ['text', 'author', 'added_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Quotation)
class QuotationAdmin(admin.ModelAdmin):
    list_display = [
        'quotation_no', 'customer_name', 'company', 'status_badge',
        'total_amount_display', 'currency', 'revision', 'valid_until', 'created_at',
    ]
    list_filter = ['status', 'currency', 'payment_terms', 'created_at', 'valid_until']
    search_fields = ['quotation_no', 'customer_name', 'company', 'email', 'enquiry__enquiry_no']
    readonly_fields = [
        'quotation_no', 'enquiry', 'status', 'revision', 'sent_at', 'sent_by', 'viewed_at',
        'accepted_at', 'declined_at', 'created_by', 'created_at', 'updated_at',
    ]

    fieldsets = (
        ('Quotation Information', {
            'fields': ('quotation_no', 'enquiry', 'customer_name', 'company', 'email', 'status', 'revision')
        }),
        ('Financial Details', {
            'fields': (
                ('currency', 'tax_rate'),
                ('shipping_cost', 'shipping_method'),
                ('payment_terms', 'custom_payment_terms'),
            )
        }),
        ('Terms & Validity', {
            'fields': ('valid_until', 'terms', 'follow_up_date', 'pdf_link')
        }),
        ('Tracking Information', {
            'fields': (
                'sent_at', 'sent_by', 'viewed_at', 'accepted_at', 'declined_at',
                'decline_reason', 'created_by', 'created_at', 'updated_at',
            ),
            'classes': ('collapse',)
        }),
    )

    inlines = [QuotationItemInline, QuotationRevisionInline, QuotationNoteInline]
    actions = ['mark_as_sent', 'mark_as_accepted', 'mark_as_declined']

    def status_badge(self, obj):
        colors = {
            'draft': '#ffc107',
            'sent': '#0d6efd',
            'accepted': '#198754',
            'declined': '#dc3545',
            'expired': '#6c757d',
        }
        color = colors.get(obj.status, '#6c757d')
        return format_html(
            '<span style="color: white; background: {}; padding: 3px 8px; '
            'border-radius: 12px; font-size: 11px; font-weight: bold;">{}</span>',
            color, obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    def total_amount_display(self, obj):
        lifecycle = QuotationLifecycle()
        total = lifecycle.pricing.round_currency(lifecycle.totals(obj).total_amount)
        return f"{obj.currency} {total:,.2f}"
    total_amount_display.short_description = 'Total'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('enquiry', 'created_by').prefetch_related('items')

    def _apply(self, request, queryset, operation, label):
        lifecycle = QuotationLifecycle()
        actor = AuthContext.from_user(request.user)
        done = 0
        for quotation in queryset:
            try:
                getattr(lifecycle, operation)(quotation, actor)
                done += 1
            except WorkflowError as e:
                self.message_user(request, f"{quotation.quotation_no}: {e.message}", level=messages.WARNING)
        self.message_user(request, f'{done} quotations marked as {label}.')

    def mark_as_sent(self, request, queryset):
        self._apply(request, queryset, 'send', 'sent')
    mark_as_sent.short_description = "Mark selected quotations as sent"

    def mark_as_accepted(self, request, queryset):
        self._apply(request, queryset, 'accept', 'accepted')
    mark_as_accepted.short_description = "Mark selected quotations as accepted"

    def mark_as_declined(self, request, queryset):
        self._apply(request, queryset, 'decline', 'declined')
    mark_as_declined.short_description = "Mark selected quotations as declined"
