"""JSON Schema validation infrastructure.

Provides schema validation for option mappings and node responses with:
- Automatic schema resolution via $ref
- Cross-reference registry for all packaged schemas
- Cached validators
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from kasset.core import SCHEMAS_DIR, load_json


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a schema registry for all packaged schemas.

    This enables $ref resolution across the schema set.
    """
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue
        schema_id = schema.get("$id") or f"https://schemas.kasset.dev/{schema_path.name}"
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(name: str, schemas_dir: Path = SCHEMAS_DIR) -> Draft202012Validator:
    """Create (and cache) a validator for a packaged schema.

    Args:
        name: Schema file name, e.g. ``"asset.options.schema.json"``
        schemas_dir: Directory holding the schema files

    Returns:
        A configured Draft202012Validator
    """
    schema = load_json(schemas_dir / name)
    return Draft202012Validator(schema, registry=_schema_registry(schemas_dir))


def validate_against_schema(obj: Any, name: str) -> List[str]:
    """Validate an object against a packaged schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
