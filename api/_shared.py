"""Shared setup for the fontpress Vercel functions.

Prefixed with _ so Vercel does NOT expose it as a route. The service
context is built once per cold start, here, and handed to every route.
"""

import sys
from pathlib import Path

# Add src/ to Python path so the fontpress package is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from fontpress.config import Settings  # noqa: E402
from fontpress.service import build_context  # noqa: E402
from fontpress.web import ServiceHandler  # noqa: E402

CONTEXT = build_context(Settings.from_env())


class RouteHandler(ServiceHandler):
    context = CONTEXT
