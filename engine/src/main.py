"""
snapci engine - Main entry point.
"""

import logging
import sys

from engine.src.config import get_settings
from engine.src.services.run_store import get_run_store
from engine.src.worker import run_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

def main():
    """Main entry point."""
    settings = get_settings()

    logger.info("Starting snapci engine")
    logger.info(f"Working tree: {settings.workspace_dir}")
    logger.info(f"Redis URL: {settings.redis_url}")

    # Create run store tables
    try:
        get_run_store()
    except Exception as e:
        logger.error(f"Failed to initialize run store: {e}")
        sys.exit(1)

    # Start worker
    logger.info("Starting worker...")
    run_worker()

if __name__ == "__main__":
    main()
