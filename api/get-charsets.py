"""Vercel Serverless Function: GET /api/get-charsets

Lists available charset ids, or returns one charset with ?name=<id>.
"""

from _shared import RouteHandler


class handler(RouteHandler):
    pass
