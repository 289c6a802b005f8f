from django.db import models
from django.contrib.auth.models import User
from django.core.validators import MinValueValidator
from django.utils import timezone
import math


class Enquiry(models.Model):
    """A customer's request for pricing or availability on catalog products"""

    STATUS_CHOICES = [
        ('new', 'New'),
        ('in_review', 'In Review'),
        ('quoted', 'Quoted'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('closed', 'Closed'),
    ]

    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    SOURCE_CHOICES = [
        ('website', 'Website'),
        ('email', 'Email'),
        ('phone', 'Phone'),
        ('referral', 'Referral'),
        ('trade_show', 'Trade Show'),
        ('contact_form', 'Contact Form'),
        ('script', 'Script'),
        ('other', 'Other'),
    ]

    # Reference number, assigned once at first save
    enquiry_no = models.CharField(max_length=20, unique=True, editable=False)

    # Customer snapshot
    customer_name = models.CharField(max_length=100)
    company = models.CharField(max_length=150)
    email = models.EmailField()
    phone = models.CharField(max_length=20)
    message = models.TextField(max_length=2000)
    attachments = models.JSONField(default=list, blank=True)

    # Workflow
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='new', db_index=True)
    priority = models.CharField(max_length=20, choices=PRIORITY_CHOICES, default='medium')
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='website')
    assigned_to = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_enquiries'
    )
    follow_up_date = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'Enquiries'
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['assigned_to', 'status']),
            models.Index(fields=['email']),
            models.Index(fields=['company']),
            models.Index(fields=['follow_up_date']),
        ]

    def __str__(self):
        return f"{self.enquiry_no} - {self.customer_name} ({self.company})"

    @property
    def total_quantity(self):
        """Total quantity across all enquired products"""
        return sum(line.quantity for line in self.products.all())

    def days_since_enquiry(self, now=None):
        now = now or timezone.now()
        return math.ceil(abs((now - self.created_at).total_seconds()) / 86400)

    def is_overdue(self, now=None):
        """Follow-up date has passed while the enquiry is still in review"""
        if not self.follow_up_date:
            return False
        now = now or timezone.now()
        return self.follow_up_date < now and self.status == 'in_review'


class EnquiryProduct(models.Model):
    """One requested product line, with the product name captured at submission"""

    enquiry = models.ForeignKey(Enquiry, on_delete=models.CASCADE, related_name='products')
    product = models.ForeignKey('catalog.Product', on_delete=models.PROTECT, related_name='enquiry_lines')
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit = models.CharField(max_length=20, blank=True)
    notes = models.TextField(blank=True, max_length=500)
    sort_order = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"{self.product_name} x {self.quantity}{' ' + self.unit if self.unit else ''}"


class EnquiryNote(models.Model):
    """Internal staff note, never shown to the customer"""

    enquiry = models.ForeignKey(Enquiry, on_delete=models.CASCADE, related_name='internal_notes')
    text = models.TextField(max_length=1000)
    author = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='enquiry_notes')
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['added_at', 'id']

    def __str__(self):
        return f"{self.enquiry.enquiry_no} note by {self.author}"


class Communication(models.Model):
    """Record of a conversation with the customer about an enquiry"""

    CHANNEL_CHOICES = [
        ('email', 'Email'),
        ('phone', 'Phone'),
        ('meeting', 'Meeting'),
        ('other', 'Other'),
    ]

    DIRECTION_CHOICES = [
        ('inbound', 'Inbound'),
        ('outbound', 'Outbound'),
    ]

    enquiry = models.ForeignKey(Enquiry, on_delete=models.CASCADE, related_name='communications')
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES)
    subject = models.CharField(max_length=200)
    body = models.TextField(max_length=2000)
    direction = models.CharField(max_length=10, choices=DIRECTION_CHOICES)
    handled_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='enquiry_communications'
    )
    communicated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['communicated_at', 'id']

    def __str__(self):
        return f"{self.get_channel_display()} ({self.direction}): {self.subject}"


class EnquiryActivity(models.Model):
    """
    Audit trail entry. Quotation references are weak (id + number) so that
    the trail survives whatever happens to the quotation.
    """

    ACTIVITY_TYPES = [
        ('quotation_created', 'Quotation Created'),
        ('quotation_sent', 'Quotation Sent'),
        ('quotation_accepted', 'Quotation Accepted'),
        ('quotation_rejected', 'Quotation Rejected'),
        ('status_updated', 'Status Updated'),
        ('other', 'Other'),
    ]

    enquiry = models.ForeignKey(Enquiry, on_delete=models.CASCADE, related_name='activities')
    activity_type = models.CharField(max_length=30, choices=ACTIVITY_TYPES)
    description = models.CharField(max_length=500)
    performed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='enquiry_activities'
    )
    performed_at = models.DateTimeField(default=timezone.now)

    # Metadata
    quotation_ref = models.PositiveBigIntegerField(null=True, blank=True)
    quotation_no = models.CharField(max_length=20, blank=True)
    old_status = models.CharField(max_length=20, blank=True)
    new_status = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ['performed_at', 'id']
        verbose_name_plural = 'Enquiry activities'
        indexes = [
            models.Index(fields=['enquiry', 'activity_type']),
        ]

    def __str__(self):
        return f"{self.enquiry.enquiry_no}: {self.description}"

    @property
    def metadata(self):
        return {
            'quotation_ref': self.quotation_ref,
            'quotation_no': self.quotation_no or None,
            'old_status': self.old_status or None,
            'new_status': self.new_status or None,
        }
