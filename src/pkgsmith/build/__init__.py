"""Build primitives: the builder interface, the linking builder, and modification detection."""

from pkgsmith.build.base import Builder, BuildStepError
from pkgsmith.build.linker import LinkBuilder
from pkgsmith.build.modified import ModificationProbe, marker_name

__all__ = ["BuildStepError", "Builder", "LinkBuilder", "ModificationProbe", "marker_name"]
