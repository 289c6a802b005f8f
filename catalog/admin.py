from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'category', 'status', 'updated_at']
    list_filter = ['category', 'status']
    search_fields = ['sku', 'name', 'description']
    readonly_fields = ['created_at', 'updated_at']
