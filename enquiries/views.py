import logging

from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from core.auth import AuthContext
from core.serializers import NoteInputSerializer
from .models import Enquiry
from .serializers import (
    EnquiryListSerializer,
    EnquiryDetailSerializer,
    EnquiryNoteSerializer,
    CommunicationSerializer,
    PublicEnquirySerializer,
    ContactFormSerializer,
    EnquiryUpdateSerializer,
    EnquiryBulkUpdateSerializer,
    CommunicationInputSerializer,
)
from .services import EnquiryLifecycle

logger = logging.getLogger(__name__)


class EnquiryViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Staff dashboard for enquiries. Every role may read; admins and editors
    may change status, ownership, notes and communications.
    """
    queryset = Enquiry.objects.all().select_related('assigned_to').prefetch_related('products')
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['enquiry_no', 'customer_name', 'company', 'email']
    ordering_fields = ['created_at', 'updated_at', 'status', 'priority', 'follow_up_date']
    ordering = ['-created_at']
    lifecycle_class = EnquiryLifecycle

    def get_lifecycle(self):
        return self.lifecycle_class()

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return EnquiryDetailSerializer
        return EnquiryListSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related(
                'products__product', 'internal_notes__author', 'communications__handled_by',
                'activities__performed_by',
            )
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('priority'):
            queryset = queryset.filter(priority=params['priority'])
        if params.get('source'):
            queryset = queryset.filter(source=params['source'])
        if params.get('assigned_to'):
            queryset = queryset.filter(assigned_to_id=params['assigned_to'])
        return queryset

    def partial_update(self, request, *args, **kwargs):
        enquiry = self.get_object()
        serializer = EnquiryUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        self.get_lifecycle().update(enquiry, AuthContext.from_user(request.user), **serializer.validated_data)
        enquiry = self.get_queryset().get(pk=enquiry.pk)
        return Response({
            'success': True,
            'message': 'Enquiry updated successfully.',
            'data': EnquiryDetailSerializer(enquiry, context=self.get_serializer_context()).data,
        })

    @action(detail=False, methods=['patch'], url_path='bulk')
    def bulk_update(self, request):
        serializer = EnquiryBulkUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_lifecycle().bulk_update(
            serializer.validated_data['enquiry_ids'],
            AuthContext.from_user(request.user),
            **serializer.validated_data['update_data'],
        )
        return Response({
            'success': True,
            'message': f"{result['modified']} enquiries updated successfully.",
            'data': result,
        })

    @action(detail=True, methods=['post'])
    def communications(self, request, pk=None):
        enquiry = self.get_object()
        serializer = CommunicationInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        communication = self.get_lifecycle().add_communication(
            enquiry, handled_by=request.user, **serializer.validated_data
        )
        return Response({
            'success': True,
            'message': 'Communication added successfully.',
            'data': CommunicationSerializer(communication).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def notes(self, request, pk=None):
        enquiry = self.get_object()
        serializer = NoteInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        note = self.get_lifecycle().add_internal_note(enquiry, serializer.validated_data['text'], request.user)
        return Response({
            'success': True,
            'message': 'Note added successfully.',
            'data': EnquiryNoteSerializer(note).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response({
            'success': True,
            'message': 'Enquiry statistics retrieved successfully.',
            'data': self.get_lifecycle().stats(),
        })


# =====================================
# PUBLIC ENDPOINTS
# =====================================

class PublicView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    lifecycle_class = EnquiryLifecycle

    def get_lifecycle(self):
        return self.lifecycle_class()


class PublicEnquiryCreateView(PublicView):
    """Enquiry form on the public website"""

    def post(self, request):
        serializer = PublicEnquirySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        products = [dict(line) for line in data.pop('products')]
        attachments = data.pop('attachments', [])

        enquiry = self.get_lifecycle().create(customer=data, products=products, attachments=attachments)
        return Response({
            'success': True,
            'message': 'Enquiry submitted successfully. We will get back to you soon.',
            'data': {
                'enquiry_no': enquiry.enquiry_no,
                'status': enquiry.status,
                'submitted_at': enquiry.created_at,
            },
        }, status=status.HTTP_201_CREATED)


class PublicEnquiryStatusView(PublicView):
    """Customers check progress with their enquiry number and email"""

    def get(self, request, enquiry_no):
        result = self.get_lifecycle().public_status(enquiry_no, request.query_params.get('email'))
        return Response({
            'success': True,
            'message': 'Enquiry status retrieved successfully.',
            'data': result,
        })


class ContactFormView(PublicView):

    def post(self, request):
        serializer = ContactFormSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        enquiry = self.get_lifecycle().submit_contact_form(**serializer.validated_data)
        logger.info(f"Contact form message stored as enquiry {enquiry.enquiry_no}")
        return Response({
            'success': True,
            'message': 'Your message has been sent successfully. We will get back to you soon.',
            'data': {'reference_no': enquiry.enquiry_no},
        }, status=status.HTTP_201_CREATED)
