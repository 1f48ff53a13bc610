"""Accumulate generated manifests into per-directory ``kustomization.yaml``.

Every output directory carries a kustomization document whose ``resources``
list grows wave after wave. Merging is idempotent:

* existing resources keep their order,
* new file names are appended in first-seen order,
* names already present (or repeated in the input) are skipped,
* ``namespace`` is only filled in when the document has none,
* a merge that adds nothing leaves the file untouched, byte for byte.

The document is loaded round-trip, so comments and extra keys written by
hand (``commonLabels``, ``patches``, ...) survive the merge.

Example:
    >>> merge_kustomization(Path("out/sink/x/crm"), ["b.yaml", "c.yaml"])
    Kustomization(api_version='kustomize.config.k8s.io/v1beta1', ...,
                  resources=['a.yaml', 'b.yaml', 'c.yaml'])
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from ruamel.yaml.comments import CommentedMap, CommentedSeq

from cdc_wave.core.errors import ManifestError
from cdc_wave.helpers.yaml_loader import YAMLError, load_yaml_file, save_yaml_file

KUSTOMIZATION_FILE = "kustomization.yaml"
DEFAULT_API_VERSION = "kustomize.config.k8s.io/v1beta1"
DEFAULT_KIND = "Kustomization"


@dataclass
class Kustomization:
    """Plain view of a kustomization document."""

    api_version: str = DEFAULT_API_VERSION
    kind: str = DEFAULT_KIND
    namespace: str | None = None
    resources: list[str] = field(default_factory=list[str])


def _load_document(path: Path) -> CommentedMap:
    """Load ``path`` as a round-trip mapping, or an empty one if absent."""
    if not path.exists():
        return CommentedMap()

    try:
        raw = load_yaml_file(path)
    except YAMLError as exc:
        raise ManifestError(f"failed to parse {path.name}: {exc}", path=path) from exc

    if raw is None:
        return CommentedMap()
    if not isinstance(raw, CommentedMap):
        raise ManifestError(
            f"{path.name} must contain a mapping, found {type(raw).__name__}",
            path=path,
        )

    resources = raw.get("resources")
    if resources is not None and not isinstance(resources, list):
        raise ManifestError(
            f"{path.name}: 'resources' must be a list, found {type(resources).__name__}",
            path=path,
        )
    return raw


def _to_view(doc: CommentedMap) -> Kustomization:
    namespace = doc.get("namespace")
    return Kustomization(
        api_version=str(doc.get("apiVersion") or DEFAULT_API_VERSION),
        kind=str(doc.get("kind") or DEFAULT_KIND),
        namespace=str(namespace) if namespace else None,
        resources=[str(r) for r in cast(list[object], doc.get("resources") or [])],
    )


def read_kustomization(directory: Path) -> Kustomization:
    """Read the kustomization document of ``directory`` (defaults if absent).

    Raises:
        ManifestError: If the existing document is malformed.
    """
    return _to_view(_load_document(directory / KUSTOMIZATION_FILE))


def _set_field(doc: CommentedMap, position: int, key: str, value: str) -> None:
    """Set ``key`` in place if present, else insert it at ``position``."""
    if key in doc:
        doc[key] = value
    else:
        doc.insert(min(position, len(doc)), key, value)


def _unique_names(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for raw_name in names:
        name = raw_name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        unique.append(name)
    return unique


def merge_kustomization(
    directory: Path,
    new_filenames: Iterable[str],
    namespace_hint: str | None = None,
) -> Kustomization:
    """Merge file names into ``directory/kustomization.yaml``.

    The file is only (re)written when the merge changed the document.

    Args:
        directory: Output directory holding the generated manifests.
        new_filenames: Bare file names (not paths) to register as resources.
        namespace_hint: Namespace to set when the document has none yet.

    Returns:
        The merged document.

    Raises:
        ManifestError: If the existing document is malformed.
    """
    path = directory / KUSTOMIZATION_FILE
    doc = _load_document(path)
    changed = not path.exists()

    if not doc.get("apiVersion"):
        _set_field(doc, 0, "apiVersion", DEFAULT_API_VERSION)
        changed = True
    if not doc.get("kind"):
        _set_field(doc, 1, "kind", DEFAULT_KIND)
        changed = True
    if namespace_hint and not doc.get("namespace"):
        _set_field(doc, 2, "namespace", namespace_hint)
        changed = True

    resources = doc.get("resources")
    if resources is None:
        resources = CommentedSeq()
        doc["resources"] = resources
        changed = True

    existing = {str(r).strip() for r in resources}
    for name in _unique_names(new_filenames):
        if name not in existing:
            resources.append(name)
            existing.add(name)
            changed = True

    if changed:
        save_yaml_file(doc, path)
    return _to_view(doc)
