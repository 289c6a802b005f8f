from django.utils import timezone
from rest_framework import serializers

from core.serializers import UserSummarySerializer
from .models import Quotation, QuotationItem, QuotationRevision, QuotationNote
from .pricing import PricingCalculator


class QuotationItemSerializer(serializers.ModelSerializer):
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = QuotationItem
        fields = [
            'id', 'product', 'product_name', 'quantity', 'unit', 'unit_price',
            'discount_percent', 'delivery_time', 'notes', 'line_total',
        ]

    def get_line_total(self, obj):
        return PricingCalculator().round_currency(obj.line_total)


class QuotationRevisionSerializer(serializers.ModelSerializer):
    modified_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = QuotationRevision
        fields = ['revision_no', 'modified_at', 'modified_by', 'changes']


class QuotationNoteSerializer(serializers.ModelSerializer):
    author = UserSummarySerializer(read_only=True)

    class Meta:
        model = QuotationNote
        fields = ['id', 'text', 'author', 'added_at']


class QuotationSerializer(serializers.ModelSerializer):
    """Quotation with its lines and derived totals"""
    enquiry_no = serializers.CharField(source='enquiry.enquiry_no', read_only=True)
    items = QuotationItemSerializer(many=True, read_only=True)
    created_by = UserSummarySerializer(read_only=True)
    sent_by = UserSummarySerializer(read_only=True)
    totals = serializers.SerializerMethodField()

    class Meta:
        model = Quotation
        fields = [
            'id', 'quotation_no', 'enquiry', 'enquiry_no', 'customer_name', 'company', 'email',
            'status', 'items', 'totals', 'currency', 'tax_rate', 'shipping_cost', 'shipping_method',
            'payment_terms', 'custom_payment_terms', 'valid_until', 'terms', 'revision',
            'sent_at', 'sent_by', 'viewed_at', 'accepted_at', 'declined_at', 'decline_reason',
            'follow_up_date', 'pdf_link', 'created_by', 'created_at', 'updated_at',
        ]

    def get_totals(self, obj):
        lifecycle = self.context.get('lifecycle')
        if lifecycle is not None:
            totals = lifecycle.totals(obj)
        else:
            totals = PricingCalculator().summarize(obj, timezone.now())
        return totals.as_dict()


class QuotationDetailSerializer(QuotationSerializer):
    previous_revisions = QuotationRevisionSerializer(many=True, read_only=True)
    internal_notes = QuotationNoteSerializer(many=True, read_only=True)

    class Meta(QuotationSerializer.Meta):
        fields = QuotationSerializer.Meta.fields + ['previous_revisions', 'internal_notes']


# =====================================
# INPUT
# =====================================

class QuotationLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit = serializers.CharField(max_length=20)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    delivery_time = serializers.CharField(max_length=100)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False
    )
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)


class QuotationCreateSerializer(serializers.Serializer):
    enquiry_id = serializers.IntegerField()
    products = QuotationLineInputSerializer(many=True, allow_empty=False)
    valid_until = serializers.DateTimeField()
    terms = serializers.CharField(max_length=3000)
    currency = serializers.ChoiceField(choices=Quotation.CURRENCY_CHOICES, required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    shipping_method = serializers.CharField(max_length=100, required=False, allow_blank=True)
    payment_terms = serializers.ChoiceField(choices=Quotation.PAYMENT_TERMS_CHOICES, required=False)
    custom_payment_terms = serializers.CharField(max_length=500, required=False, allow_blank=True)
    follow_up_date = serializers.DateTimeField(required=False)
    pdf_link = serializers.URLField(max_length=500, required=False, allow_blank=True)


class QuotationUpdateSerializer(serializers.Serializer):
    products = QuotationLineInputSerializer(many=True, allow_empty=False, required=False)
    valid_until = serializers.DateTimeField(required=False)
    terms = serializers.CharField(max_length=3000, required=False)
    status = serializers.ChoiceField(choices=Quotation.STATUS_CHOICES, required=False)
    currency = serializers.ChoiceField(choices=Quotation.CURRENCY_CHOICES, required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    shipping_method = serializers.CharField(max_length=100, required=False, allow_blank=True)
    payment_terms = serializers.ChoiceField(choices=Quotation.PAYMENT_TERMS_CHOICES, required=False)
    custom_payment_terms = serializers.CharField(max_length=500, required=False, allow_blank=True)
    follow_up_date = serializers.DateTimeField(required=False, allow_null=True)
    pdf_link = serializers.URLField(max_length=500, required=False, allow_blank=True)


class DeclineSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True)
