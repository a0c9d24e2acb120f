"""
Time-series datasets with explicitly missing cells.

A dataset is a T x N table. Each cell either holds a concrete value or is
Missing. Values are kept in a float tensor (NaN where missing) next to a
boolean presence mask, and every consumer reads the mask rather than testing
values, so no arithmetic ever runs on a missing cell by accident.

Classes
-------
Dataset
    Immutable T x N table with presence mask.

Functions
---------
read_csv
    Load a dataset from a CSV file with a header row.
write_column
    Write a numeric sequence, one value per line.

Author: Sean Plummer
Date: October 2026
"""

import math
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd
import torch

from .errors import DataShapeError


class _MissingType:
    """Marker for a missing cell."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_MissingType, ())


MISSING = _MissingType()

Cell = Union[float, int, None, _MissingType]


def _is_missing(cell) -> bool:
    if cell is None or cell is MISSING:
        return True
    return isinstance(cell, float) and math.isnan(cell)


class Dataset:
    """
    T x N table of real values with missing cells.

    Parameters
    ----------
    values : torch.Tensor
        Float tensor of shape (T, N); entries where ``mask`` is False are
        ignored and stored as NaN.
    mask : torch.Tensor
        Boolean tensor of shape (T, N), True where a value is present.

    Examples
    --------
    >>> data = Dataset.from_rows([[1.0, None], [2.0, 0.5]], n_nodes=2)
    >>> data.cell(0, 1)
    MISSING
    """

    def __init__(self, values: torch.Tensor, mask: torch.Tensor):
        values = torch.as_tensor(values, dtype=torch.float64)
        mask = torch.as_tensor(mask, dtype=torch.bool)
        if values.ndim != 2 or values.shape != mask.shape:
            raise DataShapeError(
                f"Values {tuple(values.shape)} and mask {tuple(mask.shape)} "
                "must be matching 2-D tables"
            )
        if values.shape[0] < 1:
            raise DataShapeError("Dataset must contain at least one row")
        present = values[mask]
        if not torch.isfinite(present).all():
            t, i = torch.nonzero(mask & ~torch.isfinite(values))[0].tolist()
            raise DataShapeError(f"Non-finite value at row {t}, column {i}")

        self.values = torch.where(mask, values, torch.full_like(values, float('nan')))
        self.mask = mask.clone()

    @property
    def n_time(self) -> int:
        return self.values.shape[0]

    @property
    def n_nodes(self) -> int:
        return self.values.shape[1]

    @property
    def shape(self):
        return tuple(self.values.shape)

    def is_present(self, t: int, i: int) -> bool:
        return bool(self.mask[t, i])

    def cell(self, t: int, i: int):
        """The value at (t, i), or ``MISSING``."""
        if not self.mask[t, i]:
            return MISSING
        return float(self.values[t, i])

    def observed_mask(self, template) -> torch.Tensor:
        """
        Cells that act as evidence: present and in an observed-role column.

        Hidden-role columns never contribute evidence, whatever they hold.
        """
        if template.n_nodes != self.n_nodes:
            raise DataShapeError(
                f"Dataset has {self.n_nodes} columns, template has {template.n_nodes} nodes"
            )
        role = torch.zeros(self.n_nodes, dtype=torch.bool)
        for node in template.observed_nodes():
            role[node.index] = True
        return self.mask & role.unsqueeze(0)

    def to_numpy(self) -> np.ndarray:
        """Values as a NumPy array with NaN in missing cells."""
        return self.values.numpy().copy()

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Sequence[Cell]],
        n_nodes: int
    ) -> "Dataset":
        """
        Build a dataset from rows of cells.

        ``None``, ``MISSING`` and NaN all mark a missing cell.

        Raises
        ------
        DataShapeError
            If any row does not have exactly ``n_nodes`` cells.
        """
        rows = [list(row) for row in rows]
        for t, row in enumerate(rows):
            if len(row) != n_nodes:
                raise DataShapeError(
                    f"Row {t} has {len(row)} cells, expected {n_nodes}"
                )
        if not rows:
            raise DataShapeError("Dataset must contain at least one row")

        values = torch.full((len(rows), n_nodes), float('nan'), dtype=torch.float64)
        mask = torch.zeros(len(rows), n_nodes, dtype=torch.bool)
        for t, row in enumerate(rows):
            for i, cell in enumerate(row):
                if not _is_missing(cell):
                    values[t, i] = float(cell)
                    mask[t, i] = True
        return cls(values, mask)

    @classmethod
    def from_array(
        cls,
        array,
        n_nodes: Optional[int] = None
    ) -> "Dataset":
        """Build a dataset from a 2-D array; NaN marks a missing cell."""
        values = torch.as_tensor(np.asarray(array, dtype=float), dtype=torch.float64)
        if values.ndim != 2:
            raise DataShapeError(f"Expected a 2-D table, got shape {tuple(values.shape)}")
        if n_nodes is not None and values.shape[1] != n_nodes:
            raise DataShapeError(
                f"Table has {values.shape[1]} columns, expected {n_nodes}"
            )
        return cls(values, ~torch.isnan(values))

    def __repr__(self) -> str:
        return (f"Dataset(T={self.n_time}, N={self.n_nodes}, "
                f"present={int(self.mask.sum())})")


def read_csv(
    path: Union[str, Path],
    n_nodes: Optional[int] = None,
    missing_value: Optional[float] = None
) -> Dataset:
    """
    Load a dataset from a CSV file.

    The first row is a header and is skipped. Empty cells and NaN are
    missing; ``missing_value`` additionally marks a numeric sentinel as
    missing.

    Raises
    ------
    DataShapeError
        If ``n_nodes`` is given and the table width differs.
    """
    frame = pd.read_csv(path, header=0)
    array = frame.to_numpy(dtype=float)
    if missing_value is not None:
        array[array == missing_value] = np.nan
    return Dataset.from_array(array, n_nodes=n_nodes)


def write_column(path: Union[str, Path], values) -> Path:
    """Write a numeric sequence to a text file, one value per line."""
    path = Path(path)
    np.savetxt(path, np.asarray(values, dtype=float).reshape(-1), fmt='%.10e')
    return path
