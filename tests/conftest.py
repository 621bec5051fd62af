"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Any

import pytest

from qcgate.batch import InMemoryBatchStore
from qcgate.pipeline import EvaluationPipeline, PipelineConfig
from qcgate.registry import MeasurementPoint, ProductRegistry, ProductSpec

THICKNESS_A_VALUES = [1.7, 2.6, 3.8, 4.9, 5.2]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def schemas_dir(project_root: Path) -> Path:
    """Return the schemas directory."""
    return project_root / "schemas"


@pytest.fixture
def product_registry_path(project_root: Path) -> Path:
    """Return the product registry path."""
    return project_root / "product-registry"


@pytest.fixture
def product_schema_path(schemas_dir: Path) -> Path:
    """Return the product spec schema path."""
    return schemas_dir / "product_spec.schema.json"


@pytest.fixture
def registry(product_registry_path: Path, product_schema_path: Path) -> ProductRegistry:
    """Product registry over the bundled products."""
    return ProductRegistry(product_registry_path, schema_path=product_schema_path)


@pytest.fixture
def steel_plate(registry: ProductRegistry) -> ProductSpec:
    """The bundled steel plate product."""
    return registry.get("steel_plate")


@pytest.fixture
def pipeline(product_registry_path: Path, product_schema_path: Path) -> EvaluationPipeline:
    """Pipeline over the bundled products with an in-memory store."""
    config = PipelineConfig(
        product_registry_path=product_registry_path,
        product_schema_path=product_schema_path,
        deterministic_ids=True,
    )
    return EvaluationPipeline(config, store=InMemoryBatchStore())


def make_point(**overrides: Any) -> MeasurementPoint:
    """Build a PER_SAMPLE raw-data point with a BETWEEN 14.4 +/- 0.3 rule."""
    data: dict[str, Any] = {
        "name_id": "thickness",
        "setup": {
            "nature": "QUANTITATIVE",
            "type": "SINGLE",
            "source": "MANUAL",
            "sample_amount": 3,
        },
        "evaluation_type": "PER_SAMPLE",
        "evaluation_setting": {"per_sample_setting": {"is_raw_data": True}},
        "rule_evaluation_setting": {
            "rule": "BETWEEN",
            "value": 14.4,
            "unit": "mm",
            "tolerance_minus": 0.3,
            "tolerance_plus": 0.3,
        },
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return MeasurementPoint.model_validate(data)


def single(name_id: str, values: list[float], **variables: float) -> dict[str, Any]:
    """Submission dict with SINGLE samples."""
    return {
        "measurement_item_name_id": name_id,
        "variable_values": variables,
        "samples": [
            {"sample_index": i, "single_value": v} for i, v in enumerate(values, start=1)
        ],
    }


def before_after(name_id: str, pairs: list[tuple[float, float]], **variables: float) -> dict[str, Any]:
    """Submission dict with BEFORE_AFTER samples."""
    return {
        "measurement_item_name_id": name_id,
        "variable_values": variables,
        "samples": [
            {"sample_index": i, "before_after_value": {"before": b, "after": a}}
            for i, (b, a) in enumerate(pairs, start=1)
        ],
    }


def qualitative(name_id: str, values: list[bool]) -> dict[str, Any]:
    """Submission dict with qualitative samples."""
    return {
        "measurement_item_name_id": name_id,
        "samples": [
            {"sample_index": i, "qualitative_value": v} for i, v in enumerate(values, start=1)
        ],
    }
