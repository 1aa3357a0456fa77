"""Multi-index <-> linear index bijection for tensor-product grids."""

from __future__ import annotations
from collections.abc import Iterator, Sequence
import itertools

import numpy as np

from ..exceptions import ValidationError


class FdmLinearOpLayout:
    """Layout of a grid function over ``dim[0] x dim[1] x ...`` points.

    Dimension 0 varies fastest: ``index = sum(coords[i] * spacing[i])``.
    Grid functions are flat arrays; :meth:`to_grid` reshapes one into an
    ndarray indexed ``[c0, c1, ...]`` without copying.
    """

    def __init__(self, dim: Sequence[int]) -> None:
        dim = tuple(int(d) for d in dim)
        if not dim:
            raise ValidationError("layout needs at least one dimension")
        if any(d < 1 for d in dim):
            raise ValidationError(f"every dimension must be >= 1, got {dim}")
        self._dim = dim
        self._spacing = tuple(int(s) for s in np.cumprod((1,) + dim[:-1]))
        self._size = int(np.prod(dim))

    @property
    def dim(self) -> tuple[int, ...]:
        return self._dim

    @property
    def spacing(self) -> tuple[int, ...]:
        return self._spacing

    @property
    def size(self) -> int:
        return self._size

    @property
    def ndim(self) -> int:
        return len(self._dim)

    def index(self, coordinates: Sequence[int]) -> int:
        if len(coordinates) != self.ndim:
            raise ValidationError(
                f"expected {self.ndim} coordinates, got {len(coordinates)}"
            )
        for c, d in zip(coordinates, self._dim):
            if not 0 <= c < d:
                raise ValidationError(f"coordinate {c} outside [0, {d})")
        return int(sum(c * s for c, s in zip(coordinates, self._spacing)))

    def coordinates(self, index: int) -> tuple[int, ...]:
        if not 0 <= index < self._size:
            raise ValidationError(f"index {index} outside [0, {self._size})")
        return tuple(int(c) for c in np.unravel_index(index, self._dim, order="F"))

    def coordinate_array(self, direction: int) -> np.ndarray:
        """Coordinate along ``direction`` of every linear index."""
        return np.indices(self._dim)[direction].ravel(order="F")

    def to_grid(self, a: np.ndarray) -> np.ndarray:
        return np.asarray(a).reshape(self._dim, order="F")

    def from_grid(self, g: np.ndarray) -> np.ndarray:
        return np.asarray(g).ravel(order="F")

    def __iter__(self) -> Iterator[tuple[int, tuple[int, ...]]]:
        for index, reversed_coords in enumerate(
            itertools.product(*(range(d) for d in reversed(self._dim)))
        ):
            yield index, tuple(reversed(reversed_coords))

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"FdmLinearOpLayout(dim={self._dim})"
