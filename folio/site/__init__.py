"""Site generation: build, templates, assets, link checks, dev server."""

from .build import BuildReport, build_site
from .links import LinkReport, check_site
from .serve import dev, serve

__all__ = [
    "build_site",
    "BuildReport",
    "check_site",
    "LinkReport",
    "serve",
    "dev",
]
