"""Entry point: ``python -m oauth_debugger.proxy``."""

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from ..core.config import settings  # noqa: E402
from .server import app  # noqa: E402

if __name__ == "__main__":
    uvicorn.run(app, host=settings.relay_host, port=settings.relay_port)
