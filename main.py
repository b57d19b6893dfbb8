"""
Container entrypoint for the listing ingest service.

Binds to 0.0.0.0:$PORT.
"""

import logging
import os

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    logging.getLogger(__name__).info("Starting listing ingest on port %d", port)

    from web.app import app

    uvicorn.run(app, host="0.0.0.0", port=port)
