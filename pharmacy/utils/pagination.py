"""
pharmacy/utils/pagination.py
────────────────────────────
Query-string paging and the list envelope every collection route returns:

    {"data": [...], "pagination": {page, limit, total, totalPages, hasNext, hasPrev}}
"""
from flask import current_app, request

from pharmacy.errors import ValidationError
from pharmacy.utils.validation import MAX_DB_INT


def page_args():
    """Read ?page=&limit= from the request, clamped to MAX_PAGE_SIZE."""
    try:
        page  = int(request.args.get('page', 1))
        limit = int(request.args.get('limit', current_app.config['DEFAULT_PAGE_SIZE']))
    except ValueError:
        raise ValidationError('page and limit must be integers.')
    if page < 1 or limit < 1:
        raise ValidationError('page and limit must be positive.')
    if page > MAX_DB_INT:
        raise ValidationError('page is too large.')
    return page, min(limit, current_app.config['MAX_PAGE_SIZE'])


def paginate(query, serialize):
    """Run `query` for the requested page and wrap it in the list envelope."""
    page, limit = page_args()
    result = query.paginate(page=page, per_page=limit, error_out=False)
    return envelope([serialize(row) for row in result.items], page, limit, result.total)


def envelope(rows, page, limit, total):
    total_pages = (total + limit - 1) // limit if total else 0
    return {
        'data': rows,
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': total_pages,
            'hasNext': page < total_pages,
            'hasPrev': page > 1,
        },
    }
