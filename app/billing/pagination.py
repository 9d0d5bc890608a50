"""
Pagination classes for billing API.

Invoices are listed newest first with page-number pagination; clients
can ask for up to INVOICE_CONFIG.MAX_PAGE_SIZE rows per page.
"""

from rest_framework.pagination import PageNumberPagination

from billing.constants import INVOICE_CONFIG


class InvoicePagination(PageNumberPagination):
    """
    Page-number pagination for invoice lists.

    Default: 15 invoices per page
    Maximum: 100 invoices per page

    Query parameters:
        page: Page number (1-based)
        per_page: Number of invoices (optional override)
    """

    page_size = INVOICE_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = INVOICE_CONFIG.MAX_PAGE_SIZE
    page_size_query_param = "per_page"
