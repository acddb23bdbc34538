"""Application entry point for the extraction API server."""

import uvicorn

from batchdoc.api.app import app
from batchdoc.utils.config import load_config
from batchdoc.utils.logger import setup_logging


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level, config.log_file)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
