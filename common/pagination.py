from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination for ledger listings; `?page_size=` is capped."""

    page_size_query_param = "page_size"
    max_page_size = 200
