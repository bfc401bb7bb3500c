"""Stage adapter loading.

Adapters are configured as a single reference that resolves to a factory
returning ``StageAdapters``:

- ``"package.module:factory"``: import the module and call the attribute.
- ``"name"``: the entry point ``name`` in the ``clipflow.adapters`` group,
  for adapter packages installed alongside clipflow.

The factory is called with no arguments. Its content generator is always
wrapped in ``FallbackContentGenerator``.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from typing import Any

from clipflow.adapters.content import with_fallback
from clipflow.adapters.interfaces import (
    ClipProcessor,
    Downloader,
    StageAdapters,
    Uploader,
)
from clipflow.exceptions import AdapterLoadError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "clipflow.adapters"


def _resolve_reference(reference: str) -> Callable[[], Any]:
    """Resolve ``module:attr`` or an entry point name to a callable."""
    if ":" in reference:
        module_name, _, attr_path = reference.partition(":")
        try:
            target: Any = importlib.import_module(module_name)
        except ImportError as e:
            raise AdapterLoadError(
                f"Cannot import adapter module '{module_name}': {e}"
            ) from e
        for attr in attr_path.split("."):
            try:
                target = getattr(target, attr)
            except AttributeError as e:
                raise AdapterLoadError(
                    f"Adapter factory '{attr_path}' not found in '{module_name}'"
                ) from e
        return target

    from importlib.metadata import entry_points

    matches = [ep for ep in entry_points(group=ENTRY_POINT_GROUP) if ep.name == reference]
    if not matches:
        raise AdapterLoadError(
            f"No adapter entry point named '{reference}' in group "
            f"'{ENTRY_POINT_GROUP}'"
        )
    try:
        return matches[0].load()
    except Exception as e:
        raise AdapterLoadError(
            f"Failed to load adapter entry point '{reference}': {e}"
        ) from e


def validate_adapters(adapters: StageAdapters) -> None:
    """Check that each adapter implements its protocol.

    Raises:
        AdapterLoadError: Naming the first adapter that does not.
    """
    checks = (
        ("downloader", adapters.downloader, Downloader, "download"),
        ("clip_processor", adapters.clip_processor, ClipProcessor, "process"),
        ("uploader", adapters.uploader, Uploader, "upload"),
    )
    for name, adapter, protocol, method in checks:
        if not isinstance(adapter, protocol):
            raise AdapterLoadError(
                f"Adapter '{name}' ({type(adapter).__name__}) does not "
                f"implement {protocol.__name__}.{method}()"
            )


def load_adapters(reference: str) -> StageAdapters:
    """Load and validate the stage adapters named by ``reference``.

    Raises:
        AdapterLoadError: If the reference cannot be resolved, the factory
            fails, or it returns something other than StageAdapters.
    """
    factory = _resolve_reference(reference)
    if not callable(factory):
        raise AdapterLoadError(f"Adapter reference '{reference}' is not callable")

    try:
        adapters = factory()
    except Exception as e:
        raise AdapterLoadError(f"Adapter factory '{reference}' failed: {e}") from e

    if not isinstance(adapters, StageAdapters):
        raise AdapterLoadError(
            f"Adapter factory '{reference}' returned "
            f"{type(adapters).__name__}, expected StageAdapters"
        )

    validate_adapters(adapters)
    adapters.content_generator = with_fallback(adapters.content_generator)

    logger.info("Loaded stage adapters from %s", reference)
    return adapters
