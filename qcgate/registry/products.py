"""Product registry for loading and caching product measurement schemas."""

import json
from pathlib import Path
from typing import Any

import jsonschema
import structlog
from pydantic import ValidationError as PydanticValidationError

from qcgate.errors import MeasurementPointNotFoundError, SchemaError
from qcgate.registry.checks import check_product
from qcgate.registry.models import MeasurementPoint, ProductSpec

logger = structlog.get_logger(__name__)


class ProductNotFoundError(Exception):
    """Raised when a product specification is not found."""

    pass


def load_product(data: dict[str, Any], schema: dict | None = None) -> ProductSpec:
    """Build a checked ProductSpec from raw JSON data.

    Args:
        data: The decoded product spec document.
        schema: Optional JSON Schema to validate the document against first.

    Returns:
        The validated ProductSpec.

    Raises:
        SchemaError: If the document or any measurement point is malformed.
    """
    product_id = data.get("product_id") if isinstance(data, dict) else None

    if schema:
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            path = "/".join(str(p) for p in e.absolute_path)
            raise SchemaError(product_id, [f"{path or '<root>'}: {e.message}"]) from e

    try:
        spec = ProductSpec.model_validate(data)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise SchemaError(product_id, problems) from e

    problems = check_product(spec)
    if problems:
        raise SchemaError(spec.product_id, problems)
    return spec


class ProductRegistry:
    """Registry for loading and caching product specifications.

    Loads product specs from a directory structure:
        <registry_path>/products/<product_id>.json

    Every spec is checked when it is first loaded; a spec that fails the
    checks is never cached or evaluated.
    """

    def __init__(
        self,
        registry_path: Path | str,
        schema_path: Path | str | None = None,
    ) -> None:
        """Initialize the product registry.

        Args:
            registry_path: Path to the product registry directory.
            schema_path: Optional path to the product_spec JSON Schema.
        """
        self.registry_path = Path(registry_path)
        self.products_path = self.registry_path / "products"
        self._cache: dict[str, ProductSpec] = {}
        self._schema: dict | None = None

        if schema_path:
            with open(schema_path) as f:
                self._schema = json.load(f)

    def _get_spec_path(self, product_id: str) -> Path:
        return self.products_path / f"{product_id}.json"

    def get(self, product_id: str) -> ProductSpec:
        """Get a product specification by ID.

        Raises:
            ProductNotFoundError: If the product spec file doesn't exist.
            SchemaError: If the spec fails validation or schema checks.
        """
        if product_id in self._cache:
            return self._cache[product_id]

        spec_path = self._get_spec_path(product_id)
        if not spec_path.exists():
            raise ProductNotFoundError(
                f"Product spec not found: {product_id} (expected at {spec_path})"
            )

        with open(spec_path) as f:
            data = json.load(f)

        spec = load_product(data, self._schema)
        if spec.product_id != product_id:
            raise SchemaError(
                product_id, [f"file declares product_id '{spec.product_id}'"]
            )
        logger.debug("product_loaded", product=product_id, points=len(spec.measurement_points))
        self._cache[product_id] = spec
        return spec

    def register(self, spec: ProductSpec) -> None:
        """Add an in-memory product spec, running the same checks as loading."""
        problems = check_product(spec)
        if problems:
            raise SchemaError(spec.product_id, problems)
        self._cache[spec.product_id] = spec

    def get_measurement_point(self, product_id: str, name_id: str) -> MeasurementPoint:
        """Get one measurement point of a product.

        Raises:
            MeasurementPointNotFoundError: If the product has no such point.
        """
        point = self.get(product_id).get_point(name_id)
        if point is None:
            raise MeasurementPointNotFoundError(product_id, name_id)
        return point

    def list_products(self) -> list[str]:
        """List all available product IDs."""
        ids = set(self._cache)
        if self.products_path.exists():
            ids.update(f.stem for f in self.products_path.glob("*.json"))
        return sorted(ids)
