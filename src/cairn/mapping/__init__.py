"""Per-type projections from envelope data into index records."""

from cairn.mapping.builtin import BUILTIN_MAPPINGS, build_default_registry
from cairn.mapping.registry import IndexMapping, MappingRegistry

__all__ = [
    "BUILTIN_MAPPINGS",
    "IndexMapping",
    "MappingRegistry",
    "build_default_registry",
]
