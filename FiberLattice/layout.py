"""
Lattice Layout Integration
==========================

Converts per-cell deformation factors into non-uniform grid coordinates.
Positions are integrated along each planar axis: row ``i`` is placed from
row ``i - 1`` and column ``j`` from column ``j - 1``, each step being the
spacing scaled by the mean factor of the two neighbouring cells. As long as
every factor is positive the coordinates are strictly increasing, so
neighbouring fibers can never coincide or cross.
"""

import torch


def integrate_positions(
    factors: torch.Tensor, spacing: float, anchor: float | None = None
) -> torch.Tensor:
    """Integrate deformation factors into lattice positions.

    Parameters
    ----------
    factors : torch.Tensor
        Deformation factors of shape (N, N).
    spacing : float
        Spacing of the undeformed lattice.
    anchor : float, optional
        Coordinate of row 0 and column 0. Defaults to
        ``-((N - 1) / 2) * spacing``, which centers the undeformed lattice
        at the origin.

    Returns
    -------
    torch.Tensor
        Positions of shape (N, N, 2). ``[..., 0]`` varies along the row
        index, ``[..., 1]`` along the column index.

    Examples
    --------
    >>> import torch
    >>> from FiberLattice.layout import integrate_positions
    >>> positions = integrate_positions(torch.ones(3, 3), spacing=1.0)
    >>> positions[:, 0, 0]
    tensor([-1.,  0.,  1.])
    """
    if factors.ndim != 2 or factors.shape[0] != factors.shape[1]:
        raise ValueError(f"Expected factors of shape (N, N), got {factors.shape}")
    n = factors.shape[0]
    if anchor is None:
        anchor = -((n - 1) / 2) * spacing

    step_x = spacing * (factors[:-1, :] + factors[1:, :]) / 2
    step_y = spacing * (factors[:, :-1] + factors[:, 1:]) / 2
    start_x = torch.full((1, n), anchor, dtype=factors.dtype, device=factors.device)
    start_y = torch.full((n, 1), anchor, dtype=factors.dtype, device=factors.device)

    # cumulative sums keep the sequential row-by-row / column-by-column order
    x = torch.cumsum(torch.cat([start_x, step_x], dim=0), dim=0)
    y = torch.cumsum(torch.cat([start_y, step_y], dim=1), dim=1)
    return torch.stack([x, y], dim=-1)


def check_monotonic(positions: torch.Tensor):
    """Raise RuntimeError unless coordinates strictly increase along rows
    (first axis) and columns (second axis)."""
    increasing_x = positions[1:, :, 0] > positions[:-1, :, 0]
    increasing_y = positions[:, 1:, 1] > positions[:, :-1, 1]
    if not (increasing_x.all() and increasing_y.all()):
        raise RuntimeError("Lattice positions are not strictly increasing")


def grid_segments(positions: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
    """Line segments of the base-space grid.

    Parameters
    ----------
    positions : torch.Tensor
        Positions of shape (N, N, 2).

    Returns
    -------
    along_rows, along_cols : torch.Tensor
        Both of shape (N, N - 1, 2, 2). ``along_rows[j, i]`` joins cell
        ``(i, j)`` to ``(i + 1, j)``, ``along_cols[i, j]`` joins cell
        ``(i, j)`` to ``(i, j + 1)``.
    """
    along_rows = torch.stack([positions[:-1, :], positions[1:, :]], dim=2)
    along_cols = torch.stack([positions[:, :-1], positions[:, 1:]], dim=2)
    return along_rows.permute(1, 0, 2, 3), along_cols


class LatticeLayoutIntegrator:
    """Layout integration bound to a fixed spacing and anchor.

    Parameters
    ----------
    spacing : float
        Spacing of the undeformed lattice, must be positive.
    anchor : float, optional
        Coordinate of row 0 and column 0; see :func:`integrate_positions`.
    """

    def __init__(self, spacing: float, anchor: float | None = None):
        if not spacing > 0:
            raise ValueError(f"Spacing must be positive, got {spacing}")
        self.spacing = spacing
        self.anchor = anchor

    @classmethod
    def for_lattice(cls, lattice):
        return cls(lattice.spacing, lattice.anchor)

    def __call__(self, factors: torch.Tensor) -> torch.Tensor:
        if (factors <= 0).any():
            raise ValueError("Deformation factors must be strictly positive")
        positions = integrate_positions(factors, self.spacing, self.anchor)
        check_monotonic(positions)
        return positions
