"""Template catalog flattened into a read-only lookup table keyed by dotted code."""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional

from eventstore.config.loader import load_templates_catalog
from eventstore.errors import ConfigError
from eventstore.templates.models import Template
from eventstore.utils.logging import get_logger

logger = get_logger(__name__)

LEAF_KEYS = ("title", "message", "level")


def _is_leaf(node: Mapping[str, Any]) -> bool:
    return "title" in node


def _build_template(path: str, node: Mapping[str, Any]) -> Template:
    values = {}
    for key in LEAF_KEYS:
        if key not in node:
            raise ConfigError(f"Template '{path}' is missing required key '{key}'")
        value = node[key]
        if not isinstance(value, str):
            raise ConfigError(
                f"Template '{path}' key '{key}' must be a string, got {type(value).__name__}"
            )
        values[key] = value
    return Template(code=path, **values)


def build_template_map(path: str, node: Mapping[str, Any], templates: Dict[str, Template]) -> None:
    """
    Recursively flatten a catalog node into ``templates``.

    A node holding a ``title`` key is a leaf; any other node is a group whose
    values are visited with their key appended to the dotted path.

    Raises:
        ConfigError: If a group value is not a mapping, a leaf is incomplete,
            or two nodes resolve to the same code
    """
    if _is_leaf(node):
        if not path:
            raise ConfigError("Template catalog root cannot itself be a template")
        if path in templates:
            raise ConfigError(f"Duplicate template code: {path}")
        templates[path] = _build_template(path, node)
        return

    for key, value in node.items():
        sub_path = f"{path}.{key}" if path else str(key)
        if not isinstance(value, dict):
            raise ConfigError(
                f"Template group '{sub_path}' must be a dictionary, got {type(value).__name__}"
            )
        build_template_map(sub_path, value, templates)


class TemplateStore(Mapping[str, Template]):
    """Immutable code -> Template lookup built once at startup."""

    def __init__(self, templates: Optional[Mapping[str, Template]] = None):
        self._templates = MappingProxyType(dict(templates or {}))

    @classmethod
    def from_catalog(cls, catalog: Mapping[str, Any]) -> "TemplateStore":
        if not isinstance(catalog, dict):
            raise ConfigError("Template catalog must be a dictionary")
        templates: Dict[str, Template] = {}
        build_template_map("", catalog, templates)
        return cls(templates)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "TemplateStore":
        """Read and flatten the catalog file; any failure raises ConfigError."""
        store = cls.from_catalog(load_templates_catalog(Path(path) if path else None))
        logger.info(f"Loaded {len(store)} event templates")
        return store

    def __getitem__(self, code: str) -> Template:
        return self._templates[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def codes(self) -> List[str]:
        return sorted(self._templates)
