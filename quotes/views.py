import logging

from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.auth import AuthContext
from core.serializers import NoteInputSerializer
from .models import Quotation
from .serializers import (
    QuotationSerializer,
    QuotationDetailSerializer,
    QuotationNoteSerializer,
    QuotationCreateSerializer,
    QuotationUpdateSerializer,
    DeclineSerializer,
)
from .services import QuotationLifecycle

logger = logging.getLogger(__name__)


class QuotationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Staff API for quotations. Reads apply lazy expiry before serializing, so
    a sent quotation past its validity is always reported as expired.
    """
    queryset = Quotation.objects.all().select_related('enquiry', 'created_by', 'sent_by').prefetch_related('items')
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['quotation_no', 'customer_name', 'company', 'email']
    ordering_fields = ['created_at', 'valid_until', 'status']
    ordering = ['-created_at']
    lifecycle_class = QuotationLifecycle

    def get_lifecycle(self):
        if not hasattr(self, '_lifecycle'):
            self._lifecycle = self.lifecycle_class()
        return self._lifecycle

    def get_serializer_class(self):
        if self.action == 'list':
            return QuotationSerializer
        return QuotationDetailSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['lifecycle'] = self.get_lifecycle()
        return context

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action != 'list':
            queryset = queryset.prefetch_related('previous_revisions__modified_by', 'internal_notes__author')
        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(self.get_lifecycle().status_filter(params['status']))
        if params.get('enquiry'):
            queryset = queryset.filter(enquiry_id=params['enquiry'])
        return queryset

    def get_object(self):
        return self.get_lifecycle().refresh_expiry(super().get_object())

    def _detail(self, quotation, message, status_code=status.HTTP_200_OK):
        quotation = self.get_queryset().get(pk=quotation.pk)
        return Response({
            'success': True,
            'message': message,
            'data': QuotationDetailSerializer(quotation, context=self.get_serializer_context()).data,
        }, status=status_code)

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        quotations = page if page is not None else list(queryset)

        lifecycle = self.get_lifecycle()
        for quotation in quotations:
            lifecycle.refresh_expiry(quotation)

        serializer = self.get_serializer(quotations, many=True)
        if page is not None:
            return self.get_paginated_response(serializer.data)
        return Response(serializer.data)

    def create(self, request, *args, **kwargs):
        serializer = QuotationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data['products'] = [dict(line) for line in data['products']]

        quotation = self.get_lifecycle().create(actor=AuthContext.from_user(request.user), **data)
        return self._detail(quotation, 'Quotation created successfully.', status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        quotation = self.get_object()
        serializer = QuotationUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        if 'products' in changes:
            changes['products'] = [dict(line) for line in changes['products']]

        self.get_lifecycle().update(quotation, changes, AuthContext.from_user(request.user))
        return self._detail(quotation, 'Quotation updated successfully.')

    @action(detail=True, methods=['post'])
    def send(self, request, pk=None):
        quotation = self.get_lifecycle().send(self.get_object(), AuthContext.from_user(request.user))
        return self._detail(quotation, 'Quotation sent successfully.')

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        quotation = self.get_lifecycle().accept(self.get_object(), AuthContext.from_user(request.user))
        return self._detail(quotation, 'Quotation marked as accepted.')

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        quotation = self.get_object()
        serializer = DeclineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        self.get_lifecycle().decline(
            quotation, AuthContext.from_user(request.user), serializer.validated_data.get('reason', '')
        )
        return self._detail(quotation, 'Quotation marked as declined.')

    @action(detail=True, methods=['post'])
    def notes(self, request, pk=None):
        quotation = self.get_object()
        serializer = NoteInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        note = self.get_lifecycle().add_internal_note(quotation, serializer.validated_data['text'], request.user)
        return Response({
            'success': True,
            'message': 'Note added successfully.',
            'data': QuotationNoteSerializer(note).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response({
            'success': True,
            'message': 'Quotation statistics retrieved successfully.',
            'data': self.get_lifecycle().stats(),
        })
