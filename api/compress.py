"""Vercel Serverless Function: POST /api/compress

Subsets a remote TTF/OTF font to the requested text and charsets, uploads
the result and returns its download URL.
"""

from _shared import RouteHandler


class handler(RouteHandler):
    pass
