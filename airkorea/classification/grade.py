"""
Composite index → air-quality grade.

Thresholds follow the Korean CAI bands the service publishes:
  201+     POOR
  151–200  INFERIOR
  101–150  FAIR
  51–100   GOOD
  0–50     EXCELLENT
Anything negative, absent or non-numeric is UNKNOWN.
"""

import logging
import math

from airkorea.models import Grade

logger = logging.getLogger(__name__)


def classify(index_value) -> Grade:
    """
    Map a composite index value to a Grade.

    Checks run from the highest band down so that malformed input falls
    through to UNKNOWN instead of raising.
    """
    if index_value is None or isinstance(index_value, bool):
        return Grade.UNKNOWN
    try:
        value = float(index_value)
    except (TypeError, ValueError):
        logger.debug("Unclassifiable index value %r", index_value)
        return Grade.UNKNOWN
    if math.isnan(value):
        return Grade.UNKNOWN

    if value >= 201:
        return Grade.POOR
    elif value >= 151:
        return Grade.INFERIOR
    elif value >= 101:
        return Grade.FAIR
    elif value >= 51:
        return Grade.GOOD
    elif value >= 0:
        return Grade.EXCELLENT
    return Grade.UNKNOWN
