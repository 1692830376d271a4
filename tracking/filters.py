import django_filters

from .models import EmailEvent


class EmailEventFilter(django_filters.FilterSet):
    type = django_filters.MultipleChoiceFilter(choices=EmailEvent.TYPE_CHOICES)
    occurred_after = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="gte")
    occurred_before = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="lt")

    class Meta:
        model = EmailEvent
        fields = ["type", "contact", "message_id"]
