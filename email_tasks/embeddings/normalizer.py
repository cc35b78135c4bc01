"""Fit provider-native embeddings to the stored vector width."""

from __future__ import annotations

import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

VECTOR_DIMENSIONS = 768


def normalize(raw: Sequence[float], target_width: int = VECTOR_DIMENSIONS) -> list[float]:
    """Return ``raw`` truncated or zero-padded to exactly ``target_width`` floats.

    Longer vectors keep their first ``target_width`` components (a lossy
    approximation); shorter ones are right-padded with zeros. Never raises.
    """
    width = len(raw)
    if width == target_width:
        return [float(v) for v in raw]
    if width > target_width:
        logger.debug("Truncating %d-dim embedding to %d dims", width, target_width)
        return [float(v) for v in raw[:target_width]]
    logger.debug("Padding %d-dim embedding to %d dims", width, target_width)
    return [float(v) for v in raw] + [0.0] * (target_width - width)
