"""Read and bump the package entry of a working copy's package.json."""

import json
import re
from pathlib import Path
from typing import Any

import structlog

from up_to_code.exceptions import ManifestError, RegistryLagError
from up_to_code.models.domain import Manifest
from up_to_code.versions import exact_version

log = structlog.get_logger(__name__)

_INDENT = re.compile(r"^([ \t]+)\S", re.MULTILINE)


def detect_indent(content: str) -> str | int:
    """Indentation of a JSON document, as accepted by ``json.dumps``."""
    match = _INDENT.search(content)
    if not match:
        return 2
    indent = match.group(1)
    return indent if "\t" in indent else len(indent)


class ManifestEditor:
    """Edit a package.json file in place.

    Only the declared range of one package is ever rewritten; key order,
    indentation and the trailing newline of the file are preserved.

    Args:
        path: Path of the package.json file
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> tuple[str, dict[str, Any]]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(f"Cannot read {self.path}: {e}") from e
        try:
            data = json.loads(content)
        except ValueError as e:
            raise ManifestError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ManifestError(f"{self.path} must be a JSON object")
        return content, data

    def read(self) -> Manifest:
        """Parse the dependency mappings."""
        _, data = self._load()
        return Manifest.from_package_json(data)

    def current_version(self, package_name: str) -> str:
        """Exact version the declared range of ``package_name`` pins.

        Raises:
            ManifestError: If the package is not declared exactly once or
                its range holds no semver
        """
        return exact_version(self.read().version_range(package_name))

    def bump(self, package_name: str, latest: str) -> tuple[str, str]:
        """Rewrite the declared range of ``package_name`` to ``^{latest}``.

        Returns:
            The exact versions before and after the bump

        Raises:
            ManifestError: If the package is not declared exactly once
            RegistryLagError: If ``latest`` is the version already pinned
        """
        content, data = self._load()
        manifest = Manifest.from_package_json(data)
        field = manifest.locate(package_name)
        before = exact_version(manifest.version_range(package_name))

        if exact_version(latest) == before:
            raise RegistryLagError(package_name, before)

        data[field][package_name] = f"^{latest}"
        updated = json.dumps(data, indent=detect_indent(content), ensure_ascii=False)
        if content.endswith("\n"):
            updated += "\n"
        self.path.write_text(updated, encoding="utf-8")

        after = self.current_version(package_name)
        log.info("manifest_bumped", package=package_name, field=field, before=before, after=after)
        return before, after
