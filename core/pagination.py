"""
Core — Pagination

Page-number paginator for catalog and party listings, and a cursor
paginator for the append-only movement log, where offsets would shift
while new records are appended.

@file core/pagination.py
"""

from rest_framework.pagination import CursorPagination, PageNumberPagination

from core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


class StandardPagination(PageNumberPagination):
    page_size = DEFAULT_PAGE_SIZE
    page_size_query_param = 'page_size'
    max_page_size = MAX_PAGE_SIZE


class MovementCursorPagination(CursorPagination):
    """Stable pages over movement records in commit order."""

    page_size = DEFAULT_PAGE_SIZE * 5
    page_size_query_param = 'page_size'
    max_page_size = MAX_PAGE_SIZE * 5
    ordering = ('created_at', 'id')
