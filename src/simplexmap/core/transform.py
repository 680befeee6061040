"""
Base transformation framework for immutable table operations.

Every stage of the compositional pipeline (zero replacement, closure,
abundance filtering, CLR) is a Transform: a pure function from one
AbundanceTable to a new one. Inputs are never modified.

Engineering Design:
    Pure Functions:
        - No side effects (don't modify inputs)
        - Deterministic (same input + params → same output)
        - Composable (chain transformations)

    Stage Contracts:
        Each transform declares the TableStage it accepts. validate()
        reports a stage mismatch alongside its other precondition checks,
        and apply() refuses to run on a table that fails validation.

Examples:
    >>> from simplexmap.core.transform import Transform
    >>> from simplexmap.core.table import AbundanceTable, TableStage
    >>>
    >>> class Scale(Transform):
    ...     expected_stage = TableStage.PROPORTIONS
    ...     def __init__(self, factor: float = 100.0):
    ...         super().__init__(name="Scale", params={"factor": factor})
    ...         self.factor = factor
    ...     def apply(self, table: AbundanceTable) -> AbundanceTable:
    ...         self.check(table)
    ...         return table.with_data(table.data * self.factor, stage=table.stage)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar, Optional, TYPE_CHECKING

from simplexmap.core.errors import StructuralError

if TYPE_CHECKING:
    from simplexmap.core.table import AbundanceTable, TableStage

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for all table transformations.

    Attributes:
        name: Human-readable transformation name (e.g., "Closure")
        params: Dictionary of parameters used for this transformation
        timestamp: When this transform instance was created (audit trail)
        expected_stage: TableStage accepted by apply(), or None for any
    """

    expected_stage: ClassVar[Optional["TableStage"]] = None

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        """
        Initialize transformation with name and parameters.

        Args:
            name: Human-readable transformation name
            params: JSON-serializable parameters, recorded for provenance
        """
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, table: AbundanceTable) -> AbundanceTable:
        """
        Execute transformation and return a new table.

        Must never modify the input table.
        """

    def validate(self, table: AbundanceTable) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if table.data.size == 0:
            errors.append("Cannot process empty table")

        if self.expected_stage is not None and table.stage is not self.expected_stage:
            errors.append(
                f"{self.name} expects a {self.expected_stage.value} table, "
                f"got {table.stage.value}"
            )

        return errors

    def check(self, table: AbundanceTable) -> None:
        """
        Run validate() and raise StructuralError if any precondition fails.
        """
        errors = self.validate(table)
        if errors:
            raise StructuralError("; ".join(errors), stage=self.name)

    def __repr__(self) -> str:
        """String like "AbundanceFilter(threshold=0.0001)"."""
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
