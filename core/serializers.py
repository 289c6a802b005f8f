from django.contrib.auth.models import User
from rest_framework import serializers


class UserSummarySerializer(serializers.ModelSerializer):
    name = serializers.SerializerMethodField()
    role = serializers.CharField(source='staff_profile.role', read_only=True, default=None)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'email', 'role']

    def get_name(self, obj):
        return obj.get_full_name() or obj.username


class NoteInputSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=1000)
