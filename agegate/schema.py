"""JSON Schema validation infrastructure.

Provides schema validation for setup parameter documents and plan
definitions with:
- Automatic schema resolution via $ref
- Cross-reference registry for all agegate schemas
- Cached validators for performance
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from agegate.core import load_json

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
PARAMETERS_SCHEMA = SCHEMAS_DIR / "setup-parameters.schema.json"
PLAN_SCHEMA = SCHEMAS_DIR / "plan.schema.json"


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a schema registry for all agegate schemas.

    This enables $ref resolution across the schema corpus.
    """
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("**/*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue

        schema_id = schema.get("$id", "")
        if not schema_id:
            rel = schema_path.relative_to(schemas_dir)
            schema_id = f"https://schemas.agegate.dev/{rel.as_posix()}"

        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=16)
def schema_validator(schema_path: Path) -> Draft202012Validator:
    """Create a validator for a schema file.

    Args:
        schema_path: Path to the JSON Schema file

    Returns:
        A configured Draft202012Validator
    """
    schema = load_json(schema_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_against_schema(obj: Any, schema_path: Path) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(Path(schema_path))
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
