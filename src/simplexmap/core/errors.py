"""
Error and warning taxonomy for the compositional pipeline.

Two kinds of conditions surface from the pipeline:

    Fatal (exceptions):
        StructuralError: A sample or feature violates a structural precondition
            (all-zero sample, negative or non-numeric entry). Raised before
            zero replacement is attempted.
        DomainError: A non-positive value reached a log-ratio step, or a
            replacement parameter would push a value out of the positive orthant.

    Advisory (warnings):
        SparsityWarning: A feature exceeded the tolerable zero fraction for
            reliable replacement. Processing continues with the same model.
        NumericalDegeneracyWarning: PCA rank or the distance matrix is more
            degenerate than the closure constraint alone explains.

Fatal errors carry the stage name and the offending sample/feature
identifiers so failures can be diagnosed without re-running the pipeline.

Examples:
    >>> from simplexmap.core.errors import StructuralError
    >>> try:
    ...     raise StructuralError(
    ...         "sample has no non-zero counts",
    ...         stage="zero_replacement",
    ...         samples=["S3"],
    ...     )
    ... except StructuralError as e:
    ...     print(e.stage, e.samples)
    zero_replacement ['S3']
"""

from __future__ import annotations

from typing import Iterable, Optional

__all__ = [
    'SimplexMapError',
    'StructuralError',
    'DomainError',
    'SparsityWarning',
    'NumericalDegeneracyWarning',
]

# Identifiers beyond this count are summarized in messages
_MAX_LISTED = 10


def _summarize(label: str, ids: list[str]) -> str:
    shown = ", ".join(ids[:_MAX_LISTED])
    if len(ids) > _MAX_LISTED:
        shown += f", ... ({len(ids)} total)"
    return f"{label}: {shown}"


class SimplexMapError(Exception):
    """
    Base class for fatal pipeline errors.

    Attributes:
        stage: Pipeline stage that detected the violation (e.g., "clr")
        samples: Offending sample identifiers (may be empty)
        features: Offending feature identifiers (may be empty)
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        samples: Optional[Iterable] = None,
        features: Optional[Iterable] = None,
    ) -> None:
        self.message = message
        self.stage = stage
        self.samples = [str(s) for s in samples] if samples is not None else []
        self.features = [str(f) for f in features] if features is not None else []
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        parts.append(self.message)
        if self.samples:
            parts.append(f"({_summarize('samples', self.samples)})")
        if self.features:
            parts.append(f"({_summarize('features', self.features)})")
        return " ".join(parts)


class StructuralError(SimplexMapError, ValueError):
    """A sample or feature violates a structural precondition of the pipeline."""


class DomainError(SimplexMapError, ValueError):
    """A value outside the positive domain reached a log-ratio computation."""


class SparsityWarning(UserWarning):
    """A feature exceeds the tolerable zero fraction for reliable replacement."""


class NumericalDegeneracyWarning(UserWarning):
    """Rank deficiency or distance degeneracy beyond the closure constraint."""
