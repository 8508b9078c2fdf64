"""Static measure definitions and the loader that registers them."""

from measure_engine.catalog.loader import build_registry, load_definitions


__all__ = ['build_registry', 'load_definitions']
