"""Job targets — resolve ``module:function`` references to callables."""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable

from tickwatch.scheduler.errors import RegistrationError

logger = logging.getLogger(__name__)


def resolve_target(target: str) -> Callable[..., Any]:
    """Import ``package.module:attr`` and return the callable it names.

    Dotted attributes (``module:Class.method``) are followed.

    Raises:
        RegistrationError: If the module or attribute is missing, or the
            attribute is not callable.
    """
    module_name, _, attr_path = target.partition(":")
    if not module_name or not attr_path:
        raise RegistrationError(f"Job target must look like 'module:function', got '{target}'")

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise RegistrationError(f"Cannot import job module '{module_name}': {exc}") from exc

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as exc:
            raise RegistrationError(f"Job target '{target}' not found") from exc

    if not callable(obj):
        raise RegistrationError(f"Job target '{target}' is not callable")

    logger.debug("Resolved job target '%s'", target)
    return obj


__all__ = ["resolve_target"]
