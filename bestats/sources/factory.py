"""Select the attribute source implementation for an endpoint."""

import logging
from typing import Optional

from .base import AttributeSource
from .jolokia import JolokiaSource
from .local_process import LocalProcessSource


def build_source(
    endpoint,
    timeout: float = 10.0,
    logger: Optional[logging.Logger] = None
) -> AttributeSource:
    """Local-process attach for pid endpoints, remote Jolokia otherwise."""
    if endpoint.is_local:
        return LocalProcessSource(endpoint, timeout=timeout, logger=logger)
    return JolokiaSource(endpoint, timeout=timeout, logger=logger)
