# catalog/models.py

"""
Catalog Models

Only the slice of the product catalog that the enquiry and quotation workflow
reads: identity, display name, category (which decides the permitted units)
and publication status.
"""

from django.db import models
from django.conf import settings
from django.contrib.auth.models import User


def category_choices():
    return [(category, category) for category in settings.CATEGORY_UNITS]


class Product(models.Model):
    """A catalog product that customers can enquire about"""

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('draft', 'Draft'),
        ('discontinued', 'Discontinued'),
    ]

    sku = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100, choices=category_choices, db_index=True)
    description = models.TextField(blank=True, max_length=2000)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft')

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_products')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['category', 'status']),
        ]

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def is_active(self):
        return self.status == 'active'
