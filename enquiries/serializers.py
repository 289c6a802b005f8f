from django.contrib.auth.models import User
from rest_framework import serializers

from core.serializers import UserSummarySerializer
from .models import Enquiry, EnquiryProduct, EnquiryNote, Communication, EnquiryActivity


class EnquiryProductSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    category = serializers.CharField(source='product.category', read_only=True)

    class Meta:
        model = EnquiryProduct
        fields = ['id', 'product', 'product_name', 'product_sku', 'category', 'quantity', 'unit', 'notes']


class EnquiryNoteSerializer(serializers.ModelSerializer):
    author = UserSummarySerializer(read_only=True)

    class Meta:
        model = EnquiryNote
        fields = ['id', 'text', 'author', 'added_at']


class CommunicationSerializer(serializers.ModelSerializer):
    handled_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Communication
        fields = ['id', 'channel', 'subject', 'body', 'direction', 'handled_by', 'communicated_at']


class EnquiryActivitySerializer(serializers.ModelSerializer):
    performed_by = UserSummarySerializer(read_only=True)
    metadata = serializers.DictField(read_only=True)

    class Meta:
        model = EnquiryActivity
        fields = ['id', 'activity_type', 'description', 'performed_by', 'performed_at', 'metadata']


class EnquiryListSerializer(serializers.ModelSerializer):
    assigned_to = UserSummarySerializer(read_only=True)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Enquiry
        fields = [
            'id', 'enquiry_no', 'customer_name', 'company', 'email', 'status',
            'priority', 'source', 'assigned_to', 'follow_up_date', 'product_count', 'created_at',
        ]

    def get_product_count(self, obj):
        return len(obj.products.all())


class EnquiryDetailSerializer(EnquiryListSerializer):
    products = EnquiryProductSerializer(many=True, read_only=True)
    internal_notes = EnquiryNoteSerializer(many=True, read_only=True)
    communications = CommunicationSerializer(many=True, read_only=True)
    activities = EnquiryActivitySerializer(many=True, read_only=True)
    total_quantity = serializers.IntegerField(read_only=True)
    is_overdue = serializers.SerializerMethodField()

    class Meta(EnquiryListSerializer.Meta):
        fields = EnquiryListSerializer.Meta.fields + [
            'phone', 'message', 'attachments', 'products', 'total_quantity', 'is_overdue',
            'internal_notes', 'communications', 'activities', 'updated_at',
        ]

    def get_is_overdue(self, obj):
        return obj.is_overdue(self.context.get('now'))


# =====================================
# INPUT
# =====================================

class EnquiryLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit = serializers.CharField(max_length=20, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)


class PublicEnquirySerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=100)
    company = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=20)
    message = serializers.CharField(max_length=2000)
    products = EnquiryLineInputSerializer(many=True, allow_empty=False)
    attachments = serializers.ListField(child=serializers.URLField(), required=False)


class ContactFormSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    email = serializers.EmailField()
    subject = serializers.CharField(max_length=200)
    message = serializers.CharField(max_length=1900)


class EnquiryUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Enquiry.STATUS_CHOICES, required=False)
    assigned_to = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), required=False)
    priority = serializers.ChoiceField(choices=Enquiry.PRIORITY_CHOICES, required=False)
    follow_up_date = serializers.DateTimeField(required=False)
    internal_note = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class EnquiryBulkUpdateSerializer(serializers.Serializer):
    enquiry_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    update_data = EnquiryUpdateSerializer()


class CommunicationInputSerializer(serializers.Serializer):
    channel = serializers.ChoiceField(choices=Communication.CHANNEL_CHOICES)
    subject = serializers.CharField(max_length=200)
    body = serializers.CharField(max_length=2000)
    direction = serializers.ChoiceField(choices=Communication.DIRECTION_CHOICES)
