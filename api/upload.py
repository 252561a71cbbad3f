"""Vercel Serverless Function: PUT /api/upload

Stores an original font at the path pinned by its upload token.
"""

from _shared import RouteHandler


class handler(RouteHandler):
    pass
