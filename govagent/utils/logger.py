import logging
import os

logger = logging.getLogger("govagent")
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
# uvicorn configures the root logger; keep our lines from printing twice
logger.propagate = False

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - [%(levelname)s] - %(name)s - %(funcName)s() - %(message)s"
    ))
    logger.addHandler(handler)
