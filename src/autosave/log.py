"""
Namespaced logging sink for engine diagnostics.

Module internals log through ``logging.getLogger(__name__)`` as usual. The
adapter returned by get_logger() is what orchestrators and transports hand
around: it prefixes every message with ``[autosave:<namespace>]`` and can be
switched off wholesale, which is the default when AUTOSAVE_ENV=production.
"""

import logging
import os
from typing import Any, MutableMapping, Optional, Tuple

ENV_VAR = "AUTOSAVE_ENV"


def logging_enabled_by_default() -> bool:
    return os.environ.get(ENV_VAR, "").lower() != "production"


class AutosaveLogger(logging.LoggerAdapter):
    """LoggerAdapter with a fixed prefix and an on/off switch."""

    def __init__(self, logger: logging.Logger, namespace: str, enabled: bool):
        super().__init__(logger, {"autosave_namespace": namespace})
        self.namespace = namespace
        self.enabled = enabled

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[autosave:{self.namespace}] {msg}", kwargs

    def isEnabledFor(self, level: int) -> bool:
        return self.enabled and self.logger.isEnabledFor(level)


def get_logger(namespace: str, enabled: Optional[bool] = None) -> AutosaveLogger:
    """Logger for ``autosave.<namespace>``.

    Args:
        namespace: Short component name, e.g. "transport" or "profile-form"
        enabled: Force on or off; None follows AUTOSAVE_ENV
    """
    if enabled is None:
        enabled = logging_enabled_by_default()
    return AutosaveLogger(logging.getLogger(f"autosave.{namespace}"), namespace, enabled)
