"""Development server for fontpress.

Runs the same handler as the Vercel functions in api/, on a threaded
HTTPServer so several subsetting jobs can run at once:
- POST /api/compress, GET /api/get-charsets, POST /api/upload-font,
  PUT /api/upload, GET /api/health
- GET /files/<path> serves objects from the local store
"""

import logging
import os
import sys
from pathlib import Path

# Run from a checkout without installing: make src/ importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

from fontpress.config import DEFAULT_PORT, Settings  # noqa: E402
from fontpress.web import bind_server  # noqa: E402


def main():
    logging.basicConfig(level=logging.INFO, format="[serve] %(name)s: %(message)s")
    port = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_PORT

    server = bind_server(Settings.from_env(), "127.0.0.1", port)
    settings = server.context.settings

    print(f"fontpress server on http://127.0.0.1:{server.server_address[1]}")
    print(f"Environment: {settings.environment}")
    if settings.blob_token:
        print("Storage:     Vercel Blob")
    else:
        print(f"Storage:     {os.path.abspath(settings.storage_dir)}/")
        print(f"Files:       {settings.files_url}")
    print("Press Ctrl+C to stop\n")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down.")
        server.server_close()


if __name__ == "__main__":
    main()
