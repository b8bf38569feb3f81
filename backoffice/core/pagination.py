"""Page/limit pagination shared by list endpoints"""
from django.core.paginator import Paginator

MAX_PAGE_SIZE = 100


def positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def paginate(request, queryset, serializer_class, default_limit=20):
    """
    Serialize one page of ``queryset`` using ``page`` and ``limit`` query params

    Returns the response body dict: results plus count/next/previous/page info.
    """
    page = positive_int(request.query_params.get('page'), 1)
    limit = min(positive_int(request.query_params.get('limit'), default_limit), MAX_PAGE_SIZE)

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    serializer = serializer_class(page_obj, many=True)

    return {
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }
