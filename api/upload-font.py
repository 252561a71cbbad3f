"""Vercel Serverless Function: POST /api/upload-font

Issues a short-lived signed token for uploading an original font.
"""

from _shared import RouteHandler


class handler(RouteHandler):
    pass
