"""Round-trip YAML loading and saving.

Uses ruamel.yaml so files owned by people (``ingestion.yaml``) and files
shared with the deployment tree (``kustomization.yaml``) keep their comments,
key order and quoting when read and written back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union, cast

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

# Recursive type for nested YAML structures
ConfigValue = Union[str, int, float, bool, None, 'ConfigDict', list['ConfigValue']]
ConfigDict = dict[str, ConfigValue]

__all__ = [
    "ConfigDict",
    "ConfigValue",
    "YAMLError",
    "load_yaml_file",
    "save_yaml_file",
    "yaml",
]


def _create_yaml_loader() -> YAML:
    yaml_obj = YAML()
    yaml_obj.preserve_quotes = True
    yaml_obj.default_flow_style = False
    yaml_obj.indent(mapping=2, sequence=2, offset=0)
    return yaml_obj


# Shared round-trip loader instance
yaml: YAML = _create_yaml_loader()


def load_yaml_file(file_path: Path) -> ConfigValue:
    """Load a YAML file.

    ruamel.yaml's round-trip load() is safe: it never constructs arbitrary
    Python objects from tags.

    Args:
        file_path: Path to YAML file to load.

    Returns:
        The loaded document (``None`` for an empty file).

    Raises:
        FileNotFoundError: If file does not exist.
        YAMLError: If the content is not valid YAML.
    """
    if not file_path.exists():
        raise FileNotFoundError(f"YAML file not found: {file_path}")

    with file_path.open(encoding="utf-8") as f:
        return cast(ConfigValue, yaml.load(f))


def save_yaml_file(data: object, file_path: Path) -> None:
    """Save data to a YAML file, creating parent directories.

    Args:
        data: Document to save (plain or round-trip containers).
        file_path: Path to YAML file to write.
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with file_path.open('w', encoding='utf-8') as f:
        yaml.dump(data, f)
