import django_filters as filters

from billing.models import Invoice
from billing.state_machines import InvoiceStatus


class InvoiceFilter(filters.FilterSet):
    status = filters.ChoiceFilter(choices=InvoiceStatus.choices)
    from_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    to_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Invoice
        fields = ["status", "from_date", "to_date"]
