# llmeval/utils/logger.py
import logging
import sys
from llmeval.utils.config import settings

# Diagnostic channel for the whole service: write failures, skipped lines, auth events.
logger = logging.getLogger("llmeval")

# Set the level from the settings file, defaulting to INFO if the level is invalid.
log_level = getattr(logging, settings.log_level, logging.INFO)
logger.setLevel(log_level)

# Clear any existing handlers to prevent duplicate logs during hot-reloads.
if logger.hasHandlers():
    logger.handlers.clear()

handler = logging.StreamHandler(sys.stdout)
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)

# Keep records off the root logger to avoid double printing.
logger.propagate = False
