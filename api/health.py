"""Vercel Serverless Function: GET /api/health

Liveness check.
"""

from _shared import RouteHandler


class handler(RouteHandler):
    pass
