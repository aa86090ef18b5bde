"""Helpers that turn globs, URIs and distributions into paths to watch."""

import glob
import importlib.util
import logging
from collections import deque
from importlib import metadata
from pathlib import Path
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from vmreload.reload.errors import NotPackageUriError, PackageNotFoundError

logger = logging.getLogger(__name__)

PACKAGE_SCHEME = "package"


def expand_glob(pattern: str) -> list[str]:
    """List the entities matching a glob pattern (`**` recurses)."""
    return sorted(glob.glob(pattern, recursive=True))


def path_from_uri(uri: str) -> str:
    """Return the file-system path named by a URI."""
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return url2pathname(unquote(parsed.path))
    return unquote(parsed.path)


def resolve_package_uri(uri: str) -> Path:
    """Resolve a `package:<name>/<path>` URI to a file-system path.

    The first segment names an importable package; the rest is a path
    inside that package's directory.

    Raises:
        NotPackageUriError: If the URI does not use the package scheme.
        PackageNotFoundError: If the package cannot be found.
    """
    parsed = urlparse(uri)
    if parsed.scheme != PACKAGE_SCHEME:
        raise NotPackageUriError(uri)

    name, _, rest = parsed.path.lstrip("/").partition("/")
    root = _package_root(name)
    if root is None:
        raise PackageNotFoundError(uri)

    return root / unquote(rest) if rest else root


def _package_root(name: str) -> Path | None:
    """Directory of an importable package, or the file of a plain module."""
    if not name:
        return None
    try:
        spec = importlib.util.find_spec(name)
    except (ImportError, ValueError) as e:
        logger.debug(f"Cannot find spec for {name}: {e}")
        return None

    if spec is None:
        return None
    if spec.submodule_search_locations:
        return Path(next(iter(spec.submodule_search_locations)))
    if spec.origin and spec.has_location:
        return Path(spec.origin)
    return None


def distribution_paths(distribution: metadata.Distribution) -> list[Path]:
    """Source locations of the top-level modules a distribution installs."""
    names = _top_level_names(distribution)
    paths: list[Path] = []
    for name in names:
        root = _package_root(name)
        if root is not None:
            paths.append(root)
    return paths


def _top_level_names(distribution: metadata.Distribution) -> list[str]:
    top_level = distribution.read_text("top_level.txt")
    if top_level:
        return [line.strip() for line in top_level.splitlines() if line.strip()]

    dist_name = canonicalize_name(distribution.metadata["Name"] or "")
    return sorted(
        module
        for module, dists in metadata.packages_distributions().items()
        if any(canonicalize_name(d) == dist_name for d in dists)
    )


def package_dependency_paths(name: str) -> list[str]:
    """Paths of a distribution and everything it transitively requires.

    Requirements whose environment markers do not match, and requirements
    that are not installed, are skipped.

    Raises:
        PackageNotFoundError: If the distribution itself is not installed.
    """
    try:
        root = metadata.distribution(name)
    except metadata.PackageNotFoundError as e:
        raise PackageNotFoundError(f"{PACKAGE_SCHEME}:{name}") from e

    seen: set[str] = {canonicalize_name(name)}
    queue: deque[metadata.Distribution] = deque([root])
    paths: list[str] = []

    while queue:
        distribution = queue.popleft()
        for path in distribution_paths(distribution):
            if str(path) not in paths:
                paths.append(str(path))

        for spec in distribution.requires or []:
            try:
                requirement = Requirement(spec)
            except InvalidRequirement as e:
                logger.debug(f"Skipping unparsable requirement {spec!r}: {e}")
                continue
            if requirement.marker is not None and not requirement.marker.evaluate({"extra": ""}):
                continue

            dep_name = canonicalize_name(requirement.name)
            if dep_name in seen:
                continue
            seen.add(dep_name)

            try:
                queue.append(metadata.distribution(requirement.name))
            except metadata.PackageNotFoundError:
                logger.debug(f"Dependency {requirement.name} of {name} is not installed")

    return paths
