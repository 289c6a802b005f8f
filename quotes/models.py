from django.db import models
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from decimal import Decimal

from .pricing import PricingCalculator


class Quotation(models.Model):
    """
    A priced offer prepared for an enquiry. The customer details are copied
    from the enquiry when the quotation is drafted so later edits to the
    enquiry never change what was quoted.
    """

    STATUS_CHOICES = [
        ('draft', 'Draft'),         # Being prepared, not yet sent
        ('sent', 'Sent'),           # Delivered to customer
        ('accepted', 'Accepted'),   # Customer approved
        ('declined', 'Declined'),   # Customer declined
        ('expired', 'Expired'),     # Sent and past its validity
    ]

    CURRENCY_CHOICES = [
        ('USD', 'US Dollar'),
        ('EUR', 'Euro'),
        ('INR', 'Indian Rupee'),
        ('GBP', 'British Pound'),
    ]

    PAYMENT_TERMS_CHOICES = [
        ('advance', 'Advance Payment'),
        ('30_days', '30 Days'),
        ('60_days', '60 Days'),
        ('90_days', '90 Days'),
        ('on_delivery', 'On Delivery'),
        ('custom', 'Custom'),
    ]

    # Core identification
    quotation_no = models.CharField(
        max_length=20,
        unique=True,
        editable=False,
        help_text="Human-readable quotation number (e.g., QUO25100001)"
    )
    enquiry = models.ForeignKey(
        'enquiries.Enquiry',
        on_delete=models.PROTECT,
        related_name='quotations',
        help_text="The enquiry this quotation answers"
    )

    # Customer snapshot
    customer_name = models.CharField(max_length=100)
    company = models.CharField(max_length=150)
    email = models.EmailField()

    # Validity and terms
    valid_until = models.DateTimeField(help_text="Quotation expires after this moment")
    terms = models.TextField(max_length=3000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)

    # Financial settings
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='INR')
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Tax rate percentage"
    )
    shipping_cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0)]
    )
    shipping_method = models.CharField(max_length=100, blank=True)
    payment_terms = models.CharField(max_length=20, choices=PAYMENT_TERMS_CHOICES, default='30_days')
    custom_payment_terms = models.CharField(max_length=500, blank=True)

    revision = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    # Customer communication tracking
    sent_at = models.DateTimeField(null=True, blank=True)
    sent_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='sent_quotations'
    )
    viewed_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    decline_reason = models.TextField(blank=True, max_length=1000)
    follow_up_date = models.DateTimeField(null=True, blank=True)
    pdf_link = models.URLField(max_length=500, blank=True)

    # Audit trail
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_quotations'
    )
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['enquiry']),
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['valid_until']),
            models.Index(fields=['created_by']),
        ]

    def __str__(self):
        return f"{self.quotation_no} - {self.customer_name} ({self.company})"

    def clean(self):
        if self.payment_terms == 'custom' and not (self.custom_payment_terms or '').strip():
            raise ValidationError({
                'custom_payment_terms': 'Custom payment terms are required when payment terms is custom.'
            })

    @property
    def is_expired(self):
        """Sent and past its validity date"""
        return PricingCalculator().is_expired(self, timezone.now())

    @property
    def days_until_expiry(self):
        return PricingCalculator().days_until_expiry(self, timezone.now())

    def apply_expiry(self, now=None):
        """
        Coerce a sent quotation past its validity to expired.
        Returns True when the status changed; the caller persists it.
        """
        now = now or timezone.now()
        if self.status == 'sent' and PricingCalculator().is_expired(self, now):
            self.status = 'expired'
            return True
        return False


class QuotationItem(models.Model):
    """A priced product line. Units are constrained by the product's category."""

    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='quotation_lines')
    product_name = models.CharField(max_length=200, help_text="Product name when the line was priced")

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit = models.CharField(max_length=20)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    delivery_time = models.CharField(max_length=100)
    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    notes = models.TextField(blank=True, max_length=500)

    # Ordering for display
    sort_order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"{self.product_name} (Qty: {self.quantity} {self.unit})"

    @property
    def line_total(self):
        return PricingCalculator().line_total(self)


class QuotationRevision(models.Model):
    """
    One entry per product change. ``revision_no`` is the revision the
    quotation was at before the change.
    """
    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='previous_revisions')
    revision_no = models.PositiveIntegerField()
    modified_at = models.DateTimeField(default=timezone.now)
    modified_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name='quotation_revisions'
    )
    changes = models.TextField(max_length=1000)

    class Meta:
        ordering = ['revision_no', 'id']

    def __str__(self):
        return f"{self.quotation.quotation_no} - Revision {self.revision_no}"


class QuotationNote(models.Model):
    """Internal staff note on a quotation"""

    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='internal_notes')
    text = models.TextField(max_length=1000)
    author = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='quotation_notes')
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['added_at', 'id']

    def __str__(self):
        return f"{self.quotation.quotation_no} note by {self.author}"
