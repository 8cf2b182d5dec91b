"""Registry accessors: the live recipe set, repo membership, pins, and profile."""

from pkgsmith.registry.accessor import InMemoryRegistry, RegistryAccessor, resolve_pin
from pkgsmith.registry.loader import RegistryLoadError, load_registry

__all__ = [
    "InMemoryRegistry",
    "RegistryAccessor",
    "RegistryLoadError",
    "load_registry",
    "resolve_pin",
]
