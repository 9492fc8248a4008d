"""
Lattice Topology and Snapshots
==============================

This module holds the N x N grid of fibers: its fixed topology (size,
spacing, anchor), bounds-checked cell access, and the immutable, versioned
snapshots that each recompute pass produces.

Classes
-------
CellIndex
    ``(row, col)`` coordinate of a lattice cell.
Cell
    Read-only view of one cell of a snapshot.
ScaleField
    Per-cell deformation factors and anisotropic scales produced by a
    deformation model.
LatticeSnapshot
    One complete recompute result: scale field plus world positions.
LatticeState
    Owner of the topology and of the latest committed snapshot.

World space is z-up. Positions are planar ``(x, y)`` pairs in the base
plane and ``scale_z`` scales the fiber height.
"""

import logging
from typing import NamedTuple

import torch

import FiberLattice
from FiberLattice.plotting import plot_base_space

logger = logging.getLogger(FiberLattice.__name__)


class CellIndex(NamedTuple):
    row: int
    col: int


class Cell(NamedTuple):
    row: int
    col: int
    deformation_factor: float
    scale_xy: float
    scale_z: float
    position: tuple[float, float]


class ScaleField:
    """Per-cell deformation factors and the anisotropic scales derived from
    them.

    Tensors are copied on construction and on access, so a scale field
    cannot be changed once built.

    Parameters
    ----------
    factors : torch.Tensor
        Deformation factors of shape (N, N).
    scale_xy : torch.Tensor
        Planar scale of shape (N, N).
    scale_z : torch.Tensor
        Height scale of shape (N, N).
    mode : str
        Name of the model that produced the field.
    expansion_factor : float, optional
        Raw expansion of the center fiber (closed-form model only).
    area_contraction : float, optional
        Contraction that would exactly conserve total area if applied to
        every neighbour (closed-form model only).
    safe_contraction : torch.Tensor, optional
        Per-cell contraction bound preventing overlap with the center;
        NaN at the center itself (closed-form model only).
    center : CellIndex, optional
        The fixed center cell (closed-form model only).
    """

    def __init__(
        self,
        factors: torch.Tensor,
        scale_xy: torch.Tensor,
        scale_z: torch.Tensor,
        mode: str,
        expansion_factor: float | None = None,
        area_contraction: float | None = None,
        safe_contraction: torch.Tensor | None = None,
        center: CellIndex | None = None,
    ):
        if factors.ndim != 2 or factors.shape[0] != factors.shape[1]:
            raise ValueError(f"Expected factors of shape (N, N), got {factors.shape}")
        for name, tensor in (("scale_xy", scale_xy), ("scale_z", scale_z)):
            if tensor.shape != factors.shape:
                raise ValueError(
                    f"Shape of {name} {tuple(tensor.shape)} does not match "
                    f"factors {tuple(factors.shape)}"
                )
        self._factors = factors.detach().clone()
        self._scale_xy = scale_xy.detach().clone()
        self._scale_z = scale_z.detach().clone()
        self.mode = mode
        self.expansion_factor = expansion_factor
        self.area_contraction = area_contraction
        self._safe_contraction = (
            None if safe_contraction is None else safe_contraction.detach().clone()
        )
        self.center = center

    @classmethod
    def from_factors(cls, factors: torch.Tensor, mode: str, **kwargs):
        """Scale field with ``scale_xy = factor`` and the volume-conserving
        ``scale_z = 1 / factor**2``."""
        return cls(factors, factors, 1.0 / factors**2, mode, **kwargs)

    @classmethod
    def neutral(cls, size: int, dtype=torch.float64, device="cpu"):
        return cls.from_factors(
            torch.ones((size, size), dtype=dtype, device=device), mode="neutral"
        )

    @property
    def size(self) -> int:
        return self._factors.shape[0]

    @property
    def factors(self) -> torch.Tensor:
        return self._factors.clone()

    @property
    def scale_xy(self) -> torch.Tensor:
        return self._scale_xy.clone()

    @property
    def scale_z(self) -> torch.Tensor:
        return self._scale_z.clone()

    @property
    def safe_contraction(self) -> torch.Tensor | None:
        if self._safe_contraction is None:
            return None
        return self._safe_contraction.clone()

    def volume(self) -> torch.Tensor:
        """Per-cell volume relative to the undeformed fiber."""
        return self._scale_xy**2 * self._scale_z

    def total_area(self) -> float:
        """Sum of the cross-sectional areas, in units of one undeformed fiber."""
        return (self._scale_xy**2).sum().item()

    def __repr__(self):
        return f"ScaleField(mode={self.mode!r}, size={self.size})"


class LatticeSnapshot:
    """Immutable result of one complete recompute pass.

    A renderer keeps a reference to the latest snapshot only; a new pass
    produces a new snapshot instead of modifying this one.
    """

    def __init__(
        self,
        version: int,
        scale_field: ScaleField,
        positions: torch.Tensor,
        selection: CellIndex | None = None,
        deformation_input: float | None = None,
    ):
        n = scale_field.size
        if positions.shape != (n, n, 2):
            raise ValueError(
                f"Expected positions of shape {(n, n, 2)}, got {tuple(positions.shape)}"
            )
        self.version = version
        self.scale_field = scale_field
        self._positions = positions.detach().clone()
        self.selection = selection
        self.deformation_input = deformation_input

    @property
    def size(self) -> int:
        return self.scale_field.size

    @property
    def positions(self) -> torch.Tensor:
        return self._positions.clone()

    @property
    def factors(self) -> torch.Tensor:
        return self.scale_field.factors

    @property
    def scale_xy(self) -> torch.Tensor:
        return self.scale_field.scale_xy

    @property
    def scale_z(self) -> torch.Tensor:
        return self.scale_field.scale_z

    def cell(self, row: int, col: int) -> Cell:
        _check_index(row, col, self.size)
        sf = self.scale_field
        return Cell(
            row=row,
            col=col,
            deformation_factor=sf._factors[row, col].item(),
            scale_xy=sf._scale_xy[row, col].item(),
            scale_z=sf._scale_z[row, col].item(),
            position=(
                self._positions[row, col, 0].item(),
                self._positions[row, col, 1].item(),
            ),
        )

    def cells(self):
        """Iterate over all cells in instance order (row-major)."""
        for row in range(self.size):
            for col in range(self.size):
                yield self.cell(row, col)

    def plot(self, *args, **kwargs):
        return plot_base_space(self, *args, **kwargs)

    def __repr__(self):
        return (
            f"LatticeSnapshot(version={self.version}, size={self.size}, "
            f"mode={self.scale_field.mode!r})"
        )


def _check_index(row, col, size):
    if not (0 <= row < size and 0 <= col < size):
        raise IndexError(
            f"Cell ({row}, {col}) is outside of the {size}x{size} lattice"
        )


class LatticeState:
    """Fixed N x N fiber lattice and its latest committed snapshot.

    The lattice is centered at the origin: row 0 / column 0 sit at the
    anchor ``-((N - 1) / 2) * spacing`` on each planar axis.

    Parameters
    ----------
    size : int
        Number of fibers per side, at least 1.
    spacing : float, default 1.0
        Distance between neighbouring fiber centers of the undeformed
        lattice, must be positive.
    dtype : torch.dtype, default torch.float64
        Data type of all lattice fields.
    device : str or torch.device, default "cpu"
        Device of all lattice fields.

    Raises
    ------
    TypeError
        If size is not an integer.
    ValueError
        If size < 1 or spacing <= 0.

    Examples
    --------
    >>> from FiberLattice.lattice import LatticeState
    >>> lattice = LatticeState(3, spacing=0.5)
    >>> lattice.anchor
    -0.5
    >>> lattice.cell(1, 1).position
    (0.0, 0.0)
    """

    def __init__(self, size: int, spacing: float = 1.0, dtype=torch.float64, device="cpu"):
        if isinstance(size, bool) or not isinstance(size, int):
            raise TypeError(f"Lattice size must be an integer, got {type(size)}")
        if size < 1:
            raise ValueError(f"Lattice size must be at least 1, got {size}")
        if not spacing > 0:
            raise ValueError(f"Spacing must be positive, got {spacing}")
        self._size = size
        self._spacing = float(spacing)
        self.dtype = dtype
        self.device = device
        self._snapshot = LatticeSnapshot(
            version=0,
            scale_field=ScaleField.neutral(size, dtype=dtype, device=device),
            positions=self.static_positions(),
        )

    @property
    def size(self) -> int:
        return self._size

    @property
    def spacing(self) -> float:
        return self._spacing

    @property
    def anchor(self) -> float:
        return -((self._size - 1) / 2) * self._spacing

    @property
    def snapshot(self) -> LatticeSnapshot:
        """The latest complete snapshot."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def static_positions(self) -> torch.Tensor:
        """Positions of the undeformed lattice, shape (N, N, 2)."""
        axis = (
            torch.arange(self._size, dtype=self.dtype, device=self.device)
            * self._spacing
            + self.anchor
        )
        xx, yy = torch.meshgrid(axis, axis, indexing="ij")
        return torch.stack([xx, yy], dim=-1)

    def check_index(self, row: int, col: int):
        _check_index(row, col, self._size)

    def center_index(self) -> CellIndex:
        """The cell nearest the origin."""
        distance = torch.linalg.norm(self.static_positions(), dim=-1)
        flat = int(torch.argmin(distance))
        return CellIndex(flat // self._size, flat % self._size)

    def instance_id(self, row: int, col: int) -> int:
        self.check_index(row, col)
        return row * self._size + col

    def cell_from_instance(self, instance_id: int) -> CellIndex:
        if not 0 <= instance_id < self._size**2:
            raise IndexError(
                f"Instance {instance_id} is outside of the {self._size}x{self._size} lattice"
            )
        return CellIndex(instance_id // self._size, instance_id % self._size)

    def cell(self, row: int, col: int) -> Cell:
        return self._snapshot.cell(row, col)

    def build_snapshot(
        self,
        scale_field: ScaleField,
        positions: torch.Tensor,
        selection: CellIndex | None = None,
        deformation_input: float | None = None,
    ) -> LatticeSnapshot:
        """Build the successor of the current snapshot without committing it."""
        if scale_field.size != self._size:
            raise ValueError(
                f"Scale field of size {scale_field.size} does not fit the "
                f"{self._size}x{self._size} lattice"
            )
        return LatticeSnapshot(
            version=self._snapshot.version + 1,
            scale_field=scale_field,
            positions=positions,
            selection=selection,
            deformation_input=deformation_input,
        )

    def commit(self, snapshot: LatticeSnapshot) -> LatticeSnapshot:
        """Replace the current snapshot with its successor in one step.

        Raises
        ------
        RuntimeError
            If the snapshot was not built from the current one.
        """
        if snapshot.size != self._size:
            raise ValueError(
                f"Snapshot of size {snapshot.size} does not fit the "
                f"{self._size}x{self._size} lattice"
            )
        if snapshot.version != self._snapshot.version + 1:
            raise RuntimeError(
                f"Stale snapshot: version {snapshot.version} cannot follow "
                f"version {self._snapshot.version}"
            )
        self._snapshot = snapshot
        logger.debug(f"Committed lattice snapshot {snapshot.version}")
        return snapshot

    def __repr__(self):
        return (
            f"LatticeState(size={self._size}, spacing={self._spacing}, "
            f"version={self.version})"
        )
