from rest_framework import serializers

from .models import EmailEvent


class EmailEventSerializer(serializers.ModelSerializer):
    contact_email = serializers.EmailField(source="contact.email", read_only=True, default=None)

    class Meta:
        model = EmailEvent
        fields = [
            "id",
            "type",
            "campaign",
            "contact",
            "contact_email",
            "message_id",
            "motor_block_id",
            "payload",
            "occurred_at",
        ]
        read_only_fields = fields
