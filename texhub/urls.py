"""
URL configuration for texhub project.
"""
from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from enquiries.views import (
    EnquiryViewSet, PublicEnquiryCreateView, PublicEnquiryStatusView, ContactFormView
)
from quotes.views import QuotationViewSet


router = DefaultRouter()
router.register(r'enquiries', EnquiryViewSet, basename='enquiry')
router.register(r'quotations', QuotationViewSet, basename='quotation')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include(router.urls)),

    # Public website channel (no authentication)
    path('api/public/enquiries/', PublicEnquiryCreateView.as_view(), name='public_enquiry_create'),
    path(
        'api/public/enquiries/<str:enquiry_no>/status/',
        PublicEnquiryStatusView.as_view(),
        name='public_enquiry_status',
    ),
    path('api/public/contact/', ContactFormView.as_view(), name='public_contact'),
]
