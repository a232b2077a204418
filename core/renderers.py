"""
Core — Response Renderer

Wraps all successful responses in the standard envelope:
  { "success": true, "data": ..., "meta": ... }

Page-number pages carry a count; cursor pages (movement log) only carry
next / previous links.

@file core/renderers.py
"""

from rest_framework.renderers import JSONRenderer


class StandardJSONRenderer(JSONRenderer):
    """Wraps successful API responses in a consistent envelope."""

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = renderer_context.get('response') if renderer_context else None

        if response is not None and response.status_code >= 400:
            return super().render(data, accepted_media_type, renderer_context)

        if isinstance(data, dict) and 'success' in data:
            return super().render(data, accepted_media_type, renderer_context)

        if isinstance(data, dict) and 'results' in data:
            meta = {
                'next': data.get('next'),
                'previous': data.get('previous'),
            }
            if 'count' in data:
                meta['count'] = data['count']
            envelope = {
                'success': True,
                'data': data['results'],
                'meta': meta,
            }
        else:
            envelope = {
                'success': True,
                'data': data,
            }

        return super().render(envelope, accepted_media_type, renderer_context)
