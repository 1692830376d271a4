from rest_framework import serializers

from .exceptions import InvalidFilterDefinition
from .models import Contact, ContactList, Suppression
from .services import validate_filter_definition


class ContactSerializer(serializers.ModelSerializer):
    class Meta:
        model = Contact
        fields = [
            "id",
            "email",
            "name",
            "identity_name",
            "status",
            "last_engagement_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "status", "last_engagement_at", "created_at", "updated_at"]

    def validate_email(self, value):
        value = value.strip()
        tenant = self.context["tenant"]
        clash = Contact.objects.filter(tenant=tenant, email__iexact=value)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError("A contact with this email already exists.")
        return value


class ContactListSerializer(serializers.ModelSerializer):
    active_members = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = ContactList
        fields = [
            "id",
            "name",
            "description",
            "is_smart",
            "filter_definition",
            "active_members",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        is_smart = attrs.get("is_smart", getattr(self.instance, "is_smart", False))
        definition = attrs.get("filter_definition", getattr(self.instance, "filter_definition", {}))
        if is_smart:
            try:
                validate_filter_definition(definition)
            except InvalidFilterDefinition as e:
                raise serializers.ValidationError({"filter_definition": str(e)})
        return attrs


class MembershipChangeSerializer(serializers.Serializer):
    contact_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class BulkMoveSerializer(MembershipChangeSerializer):
    target_list_id = serializers.UUIDField()


class SuppressionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Suppression
        fields = ["id", "email", "reason", "source", "landing_variant", "created_at"]
        read_only_fields = ["id", "source", "landing_variant", "created_at"]
