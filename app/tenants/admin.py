"""
Tenant admin configuration.
"""

from django.contrib import admin

from tenants.models import Tenant, TenantMembership


class TenantMembershipInline(admin.TabularInline):
    model = TenantMembership
    extra = 0
    raw_id_fields = ["user"]


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    """
    Admin configuration for Tenant.

    The plan is read-only here: it follows checkout verification and plan
    changes made through the billing services.
    """

    list_display = ["id", "name", "owner", "plan", "billing_email", "created_at"]
    search_fields = ["id", "name", "billing_email", "owner__email"]
    readonly_fields = ["id", "plan", "created_at", "updated_at"]
    raw_id_fields = ["owner"]
    inlines = [TenantMembershipInline]
