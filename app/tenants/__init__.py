"""
Tenants app: the accounts that own billing records.

Tenant management itself (workspaces, invitations, settings) is handled
elsewhere. This app keeps only what billing needs: the tenant row with its
current plan and billing address snapshot source, and memberships that
decide who may read or manage billing.
"""
