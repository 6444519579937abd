"""Stack and template reference data.

The catalog is a single ``catalog.json`` file under ``config.data_dir``::

    {
      "stacks": [{"id": "fitit", "name": "Fit It", "requires_secondary": true,
                  "expected_results": 4}, ...],
      "templates": [{"id": "fitit-tryon", "stack_id": "fitit", "prompt": "...",
                     "aspect_ratio": "3:4"}, ...],
      "trending": ["fitit-tryon", ...]
    }

Stacks carry the per-category parameters the remix pipeline needs
(``requires_secondary`` and ``expected_results``); templates carry the prompt
and aspect ratio that parameterize each generation request.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import Stack, Template

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "catalog.json"

# Aspect ratios understood by the image model.
ASPECT_RATIOS = ("1:1", "4:3", "3:4", "16:9", "9:16")


class Catalog:
    """In-memory lookup over stacks and templates.

    Attributes:
        stacks: Stacks in file order.
        templates: Templates in file order.
        trending_ids: Template ids featured on the landing page.
    """

    def __init__(
        self,
        stacks: list[Stack],
        templates: list[Template],
        trending_ids: list[str] | None = None,
    ) -> None:
        self.stacks = list(stacks)
        self.templates = list(templates)
        self._stacks = {s.id: s for s in self.stacks}
        self._templates = {t.id: t for t in self.templates}

        for template in self.templates:
            if template.stack_id not in self._stacks:
                raise ValueError(
                    f"Template '{template.id}' references unknown stack '{template.stack_id}'"
                )
            if template.aspect_ratio is not None and template.aspect_ratio not in ASPECT_RATIOS:
                raise ValueError(
                    f"Template '{template.id}' has unsupported aspect ratio "
                    f"'{template.aspect_ratio}'"
                )

        self.trending_ids = [tid for tid in (trending_ids or []) if tid in self._templates]

    def get_stack(self, stack_id: str) -> Stack:
        """Return the stack with ``stack_id``.

        Raises:
            KeyError: If no such stack exists.
        """
        try:
            return self._stacks[stack_id]
        except KeyError:
            raise KeyError(f"Unknown stack: {stack_id}") from None

    def get_template(self, template_id: str) -> Template:
        """Return the template with ``template_id``.

        Raises:
            KeyError: If no such template exists.
        """
        try:
            return self._templates[template_id]
        except KeyError:
            raise KeyError(f"Unknown template: {template_id}") from None

    def stack_for(self, template: Template) -> Stack:
        return self.get_stack(template.stack_id)

    def templates_in(self, stack_id: str) -> list[Template]:
        self.get_stack(stack_id)
        return [t for t in self.templates if t.stack_id == stack_id]

    def trending(self) -> list[Template]:
        return [self._templates[tid] for tid in self.trending_ids]


def _stack_from_dict(raw: dict) -> Stack:
    expected = raw.get("expected_results")
    return Stack(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        image_url=raw.get("image_url", ""),
        requires_secondary=bool(raw.get("requires_secondary", False)),
        expected_results=int(expected) if expected is not None else None,
    )


def _template_from_dict(raw: dict) -> Template:
    return Template(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        stack_id=raw["stack_id"],
        image_url=raw.get("image_url", ""),
        prompt=raw.get("prompt") or "",
        aspect_ratio=raw.get("aspect_ratio") or None,
    )


def load_catalog(data_dir: Path) -> Catalog:
    """Load ``catalog.json`` from ``data_dir``.

    Args:
        data_dir: Directory containing the catalog file.

    Returns:
        Populated :class:`Catalog`.

    Raises:
        FileNotFoundError: If the catalog file does not exist.
        ValueError: If the file is not valid JSON or an entry is malformed.
    """
    path = Path(data_dir) / CATALOG_FILENAME
    with open(path, encoding="utf-8") as handle:
        try:
            raw = json.load(handle)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid catalog file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ValueError(f"Invalid catalog file {path}: expected a JSON object")

    try:
        stacks = [_stack_from_dict(s) for s in raw.get("stacks", [])]
        templates = [_template_from_dict(t) for t in raw.get("templates", [])]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed entry in catalog file {path}: {e}") from e

    catalog = Catalog(stacks, templates, raw.get("trending", []))
    logger.info(
        f"Loaded catalog from {path} "
        f"({len(catalog.stacks)} stacks, {len(catalog.templates)} templates)"
    )
    return catalog
