"""Flashing adapter registry.

Each adapter module exposes ``ADAPTER_TYPE`` and a ``flash(**kwargs)``
entrypoint with the signature of :func:`ebt.flashers.esp32_esptool.flash`.
"""

from __future__ import annotations

from types import ModuleType

from ebt.errors import ValidationError
from ebt.flashers import esp32_esptool

__all__ = ["get_adapter", "list_adapters"]

_ADAPTERS: dict[str, ModuleType] = {
    esp32_esptool.ADAPTER_TYPE: esp32_esptool,
}


def get_adapter(adapter_type: str) -> ModuleType:
    """Return the flashing adapter registered for *adapter_type*.

    Raises:
        ValidationError: No adapter is registered under that name.
    """
    adapter = _ADAPTERS.get(adapter_type)
    if adapter is None:
        supported = ", ".join(sorted(_ADAPTERS))
        raise ValidationError(
            f"No flashing adapter registered for type: {adapter_type}. Supported: {supported}"
        )
    return adapter


def list_adapters() -> list[str]:
    return sorted(_ADAPTERS)
