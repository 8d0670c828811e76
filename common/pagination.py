from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination for list endpoints.

    Movement history grows without bound, so `?page_size=` is honored but
    capped.
    """

    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 500
