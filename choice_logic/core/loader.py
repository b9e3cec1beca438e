"""
Form definition loader.

Reads host form definitions from JSON or YAML files (or strings) into a
validated FormSchema.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from choice_logic.core.schema import FormSchema

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".yaml", ".yml")


class FormDefinitionError(Exception):
    """Raised when a form definition cannot be read, parsed or validated."""

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"Form definition '{source}': {message}")


def parse_form_definition(content: str, fmt: str = "json", source: str = "<string>") -> FormSchema:
    """Parse a form definition string.

    Args:
        content: The raw definition text.
        fmt: "json" or "yaml".
        source: Name used in error messages.

    Returns:
        The validated FormSchema.

    Raises:
        FormDefinitionError: If the content is not valid JSON/YAML or not a
            valid form definition.
    """
    try:
        if fmt == "json":
            data: Any = json.loads(content)
        elif fmt in ("yaml", "yml"):
            data = yaml.safe_load(content)
        else:
            raise FormDefinitionError(source, f"unsupported format '{fmt}'")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise FormDefinitionError(source, f"could not parse {fmt}: {e}") from e

    if not isinstance(data, dict):
        raise FormDefinitionError(source, "top level must be a mapping")

    try:
        return FormSchema.model_validate(data)
    except ValidationError as e:
        raise FormDefinitionError(source, str(e)) from e


def load_form_schema(path: str | Path) -> FormSchema:
    """Load a form definition from a .json, .yaml or .yml file.

    Raises:
        FormDefinitionError: If the file cannot be read or is invalid.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise FormDefinitionError(path.name, f"unsupported file type '{suffix}'")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FormDefinitionError(path.name, f"could not read file: {e}") from e

    form = parse_form_definition(content, fmt=suffix.lstrip("."), source=path.name)
    logger.debug("Loaded form %s from %s (%d fields)", form.form_id, path, len(form.fields))
    return form


def list_form_files(directory: str | Path) -> list[Path]:
    """Return the form definition files in a directory, sorted by name."""
    directory = Path(directory)
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix.lower() in SUPPORTED_SUFFIXES)
