"""Manifest template rendering.

Templates are packaged YAML files under ``cdc_wave/templates/`` with
``{{VAR}}`` placeholders:

    source-connector.yaml   Strimzi KafkaConnector (Debezium SQL Server)
    sink-connector.yaml     Strimzi KafkaConnector (Snowflake sink)
    snowflake-job.yaml      Kubernetes Job + ConfigMap preparing the tables

Any placeholder left after substitution is an error: an unfilled manifest
must never reach the deployment tree.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

from cdc_wave.core.errors import TemplateError
from cdc_wave.helpers.helpers_logging import print_info

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

SOURCE_TEMPLATE = "source-connector"
SINK_TEMPLATE = "sink-connector"
JOB_TEMPLATE = "snowflake-job"

_PLACEHOLDER_RE = re.compile(r"\{\{([A-Z][A-Z0-9_]*)\}\}")


def load_template(template_id: str) -> str:
    """Load a template by id.

    Raises:
        TemplateError: If no such template is packaged.
    """
    template_path = TEMPLATES_DIR / f"{template_id}.yaml"
    if not template_path.exists():
        raise TemplateError(f"template not found: {template_id}", path=template_path)
    return template_path.read_text(encoding="utf-8")


def substitute_variables(template: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{VAR}}`` placeholders with values from ``variables``.

    Substitution is a single pass over the template, so placeholder-like text
    inside a value is copied as is. Unknown placeholders are left in place.
    """

    def _value(match: re.Match[str]) -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return _PLACEHOLDER_RE.sub(_value, template)


def render(template_id: str, variables: Mapping[str, object]) -> str:
    """Render template ``template_id`` with ``variables``.

    Raises:
        TemplateError: If the template is unknown or placeholders remain.
    """
    template = load_template(template_id)
    leftover = sorted(set(_PLACEHOLDER_RE.findall(template)) - set(variables))
    if leftover:
        raise TemplateError(
            f"unresolved placeholders in {template_id}: {', '.join(leftover)}",
        )
    return substitute_variables(template, variables)


def render_to_file(content: str, path: Path) -> bool:
    """Write ``content`` to ``path`` unless it already holds exactly that.

    Returns:
        True if the file was written, False if it was unchanged.
    """
    if path.exists() and path.read_text(encoding="utf-8") == content:
        print_info(f"   ⊘ Unchanged: {path}")
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    print_info(f"   ✓ Generated: {path}")
    return True
