"""
Pagination utilities for the project.

Defines the default page number pagination used by list endpoints such
as the event catalog.  Clients may ask for smaller or larger pages with
``?page_size=`` up to ``max_page_size``.
"""
from rest_framework.pagination import PageNumberPagination

class DefaultPagination(PageNumberPagination):
    """A simple page number paginator with a client-adjustable page size."""
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100
