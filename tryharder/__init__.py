"""
TryHarder - Probe-and-Classify Engine for Recon Tools
Version: 1.0.0

One generic async engine drives every reconnaissance tool:
- Candidate generation from path tables, word lists and payload banks
- A single egress seam for all outbound HTTP
- Baseline comparison and rule-based classification
- Deduplicated, severity-ordered findings per tool run
"""

import logging

from tryharder.config import get_config

__version__ = '1.0.0'

# Configure logging - Don't log response bodies or tokens
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def configure_logging(config_class=None):
    """Apply the configured LOG_LEVEL to every tryharder logger."""
    config_class = config_class or get_config()
    logger.setLevel(config_class.LOG_LEVEL)


configure_logging()
