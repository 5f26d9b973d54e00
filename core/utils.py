"""
Shared API helpers: the response envelope every view returns and the
default paginator.
"""
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


def rest_api_formatter(data, status_code, success=True, message='', error_code=None, error_message=None,
                       error_fields=None):
    """
    Wrap a payload in the standard API envelope.

    Example:
        {
            "success": false,
            "message": "Failed to create discount",
            "data": null,
            "error": {"code": "VALIDATION_ERROR", "message": "..."}
        }
    """
    body = {
        'success': success,
        'message': message,
        'data': data,
    }
    if error_code or error_message:
        body['error'] = {
            'code': error_code,
            'message': error_message,
        }
        if error_fields:
            body['error']['fields'] = error_fields
    return Response(body, status=status_code)


class Pagination(PageNumberPagination):
    """20 items per page, client may ask for up to 100."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100

    def get_paginated_response(self, data):
        return Response({
            'success': True,
            'message': 'Results retrieved successfully',
            'data': data,
            'pagination': {
                'count': self.page.paginator.count,
                'page': self.page.number,
                'total_pages': self.page.paginator.num_pages,
                'next': self.get_next_link(),
                'previous': self.get_previous_link(),
            }
        })
