"""Tests for the callable execute() interface."""

from pathlib import Path
from typing import Any

import pytest

from conftest import single
from qcgate import execute
from qcgate.errors import MissingDependencyError

GOOD_THICKNESS = [14.3, 14.4, 14.5, 14.2, 14.6]


@pytest.fixture
def config(tmp_path: Path, product_registry_path: Path, product_schema_path: Path) -> dict[str, Any]:
    """Callable config with a temporary batch store."""
    return {
        "product_registry_path": str(product_registry_path),
        "product_schema_path": str(product_schema_path),
        "batch_store_path": str(tmp_path / "batches"),
        "deterministic_ids": True,
    }


class TestExecute:
    """Tests for execute()."""

    def test_save_progress_creates_batch(self, config: dict[str, Any]) -> None:
        """Test a product_id without measurement_id creates a batch first."""
        result = execute(
            {
                "operation": "save_progress",
                "product_id": "steel_plate",
                "items": [single("thickness_a", GOOD_THICKNESS)],
                "config": config,
            }
        )
        assert result["schema_version"] == "1.0"
        assert len(result["items"]) == 1
        assert result["items"][0]["status"] is True
        stats = result["stats"]
        assert stats["measurement_id"].startswith("MSR-")
        assert stats["saved_items"] == 1
        assert stats["total_items"] == 1
        assert stats["progress"] == 100.0
        assert stats["input"] == 1
        assert stats["output"] == 1

    def test_submit_against_saved_batch(self, config: dict[str, Any]) -> None:
        """Test submit completes a batch saved by an earlier call."""
        saved = execute(
            {
                "operation": "save_progress",
                "product_id": "steel_plate",
                "items": [single("thickness_a", GOOD_THICKNESS)],
                "config": config,
            }
        )
        measurement_id = saved["stats"]["measurement_id"]
        result = execute(
            {
                "operation": "submit",
                "measurement_id": measurement_id,
                "items": [single("flatness", [0.1, 0.2, 0.4])],
                "measured_by": "qc1",
                "config": config,
            }
        )
        stats = result["stats"]
        assert stats["overall_result"] == "NG"
        assert stats["passed"] == 1
        assert stats["failed"] == 1
        assert stats["pass_rate"] == 50.0
        assert [i["measurement_item_name_id"] for i in result["items"]] == [
            "thickness_a",
            "flatness",
        ]

    def test_check_dependencies(self, config: dict[str, Any]) -> None:
        """Test check_dependencies reports missing items."""
        result = execute(
            {
                "operation": "check_dependencies",
                "product_id": "steel_plate",
                "item_id": "thickness_b",
                "config": config,
            }
        )
        assert result["items"] == [
            {"measurement_item_name_id": "thickness_b", "missing_items": ["thickness_a"]}
        ]
        assert result["stats"]["missing"] == 1

    def test_evaluate_item(self, config: dict[str, Any]) -> None:
        """Test evaluate_item evaluates the first item with the rest as context."""
        result = execute(
            {
                "operation": "evaluate_item",
                "product_id": "steel_plate",
                "items": [
                    single("thickness_b", [14.5, 14.4, 14.3, 14.8, 14.0]),
                    single("thickness_a", GOOD_THICKNESS),
                ],
                "config": config,
            }
        )
        assert result["stats"]["status"] is True
        assert result["items"][0]["measurement_item_name_id"] == "thickness_b"

    def test_evaluation_errors_propagate(self, config: dict[str, Any]) -> None:
        """Test evaluation errors are raised to the caller."""
        with pytest.raises(MissingDependencyError):
            execute(
                {
                    "operation": "submit",
                    "product_id": "steel_plate",
                    "items": [single("thickness_b", GOOD_THICKNESS)],
                    "config": config,
                }
            )


class TestExecuteParams:
    """Tests for parameter validation."""

    def test_unknown_operation(self, config: dict[str, Any]) -> None:
        """Test operation must be known."""
        with pytest.raises(ValueError, match="'operation' must be one of"):
            execute({"operation": "delete", "product_id": "steel_plate", "config": config})

    def test_items_must_be_list(self, config: dict[str, Any]) -> None:
        """Test items must be a list."""
        with pytest.raises(ValueError, match="'items' must be a list"):
            execute({"operation": "submit", "items": {"a": 1}, "config": config})

    def test_batch_or_product_required(self, config: dict[str, Any]) -> None:
        """Test a batch or product must be named."""
        with pytest.raises(ValueError, match="'measurement_id' or 'product_id'"):
            execute({"operation": "submit", "items": [], "config": config})

    def test_item_id_required(self, config: dict[str, Any]) -> None:
        """Test check_dependencies needs item_id."""
        with pytest.raises(ValueError, match="'item_id' is required"):
            execute(
                {"operation": "check_dependencies", "product_id": "steel_plate", "config": config}
            )

    def test_evaluate_needs_item(self, config: dict[str, Any]) -> None:
        """Test evaluate_item needs at least one item."""
        with pytest.raises(ValueError, match="must contain the item"):
            execute({"operation": "evaluate_item", "product_id": "steel_plate", "config": config})
