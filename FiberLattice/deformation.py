"""
Deformation Models
==================

Deformation models turn a single scalar deformation input (and, for the
general model, a selected cell) into a :class:`~FiberLattice.lattice.ScaleField`
over the whole lattice.

Classes
-------
DeformationModel
    Abstract base class. Validates the input range, delegates to
    ``_compute`` and checks that every resulting scale is finite and
    strictly positive.
ClosedFormDeformation
    Fixed 3x3 bundle. The center fiber expands isotropically and its eight
    neighbours contract so that the total cross-sectional area is conserved,
    unless that would make a neighbour overlap the expanding center.
DecayDeformation
    Arbitrary N x N lattice. The selected fiber takes the input value and
    every other fiber follows with an exponential falloff in grid distance.

In both models every fiber keeps its volume: ``scale_z = 1 / scale_xy**2``.

Constants
---------
MAX_EXPANSION, MIN_SPACING, FIBER_HALF_WIDTH, TOTAL_AREA,
MIN_AREA_PER_NEIGHBOR
    Defaults of the closed-form model.
DECAY_RATE
    Default falloff of the decay model. Larger values localize the effect.
"""

import logging
import math
from abc import ABC, abstractmethod

import torch

import FiberLattice
from FiberLattice.lattice import CellIndex, LatticeState, ScaleField

logger = logging.getLogger(FiberLattice.__name__)

MAX_EXPANSION = 2.1
MIN_SPACING = 0.1
MIN_VISIBLE_SPACING = 0.05
FIBER_HALF_WIDTH = 0.2
TOTAL_AREA = 9.0
NEIGHBOR_COUNT = 8
MIN_AREA_PER_NEIGHBOR = MIN_VISIBLE_SPACING**2

DECAY_RATE = 1.5


class DeformationModel(ABC):
    """Abstract base class of the deformation models.

    Subclasses set ``mode``, ``input_range``, ``integrates_layout`` and
    ``uses_selection``, and implement
    ``_compute(deformation_input, lattice, selection)``.

    ``integrates_layout`` tells the recompute pipeline whether positions
    come from integrating the scale field
    (:func:`FiberLattice.layout.integrate_positions`) or stay at the static
    lattice centers. Snapshots of a model without ``uses_selection`` carry
    no selection.
    """

    mode: str
    input_range: tuple[float, float]
    integrates_layout: bool
    uses_selection: bool

    def __call__(
        self,
        deformation_input: float,
        lattice: LatticeState,
        selection: CellIndex | tuple[int, int] | None = None,
    ) -> ScaleField:
        """Compute the scale field of the lattice.

        Parameters
        ----------
        deformation_input : float
            Scalar input, must lie within ``input_range``.
        lattice : LatticeState
            The lattice to deform.
        selection : CellIndex, optional
            Selected cell, if the model supports one.

        Returns
        -------
        ScaleField

        Raises
        ------
        ValueError
            If the input lies outside of ``input_range``.
        RuntimeError
            If the computed scales are not finite and strictly positive.
        """
        self._validate_input(deformation_input)
        if selection is not None:
            selection = CellIndex(*selection)
        scale_field = self._compute(float(deformation_input), lattice, selection)
        self._check_scales(scale_field)
        return scale_field

    def compute_scale_field(self, deformation_input, lattice, selection=None):
        return self(deformation_input, lattice, selection)

    def _validate_input(self, deformation_input):
        low, high = self.input_range
        if not low <= deformation_input <= high:
            raise ValueError(
                f"Deformation input {deformation_input} outside of [{low}, {high}] "
                f"for {self.__class__.__name__}"
            )

    @staticmethod
    def _check_scales(scale_field: ScaleField):
        for name, scale in (
            ("scale_xy", scale_field._scale_xy),
            ("scale_z", scale_field._scale_z),
        ):
            if not torch.isfinite(scale).all() or (scale <= 0).any():
                raise RuntimeError(f"{name} must be finite and strictly positive")

    @abstractmethod
    def _compute(
        self,
        deformation_input: float,
        lattice: LatticeState,
        selection: CellIndex | None,
    ) -> ScaleField:
        pass


class ClosedFormDeformation(DeformationModel):
    """Closed-form deformation of the fixed 3x3 bundle.

    The center fiber (the cell nearest the origin) expands by

    ``expansion = 1 + deformation_input * (max_expansion - 1)``

    and each neighbour at planar distance ``d`` from the center contracts by

    ``max(safe_contraction, area_contraction)``

    with ``area_contraction = sqrt((total_area - expansion**2) / 8)``, the
    uniform contraction conserving the total area, and
    ``safe_contraction = (d - expansion * fiber_half_width - min_spacing) / d``,
    the contraction keeping the neighbour ``min_spacing`` away from the
    expanding center. Whenever the two disagree the overlap bound wins and
    the total area is no longer exactly conserved.

    Parameters
    ----------
    max_expansion : float, default 2.1
        Expansion of the center at ``deformation_input = 1``.
    min_spacing : float, default 0.1
        Minimum gap between the center and a neighbour, at least 0.05.
    fiber_half_width : float, default 0.2
        Half width of an undeformed fiber.
    total_area : float, default 9.0
        Area budget of the bundle, in units of one undeformed fiber.
    min_area_per_neighbor : float, default 0.0025
        Smallest area a neighbour may be left with.

    Raises
    ------
    ValueError
        If a constant is out of range or ``max_expansion**2`` exceeds
        ``total_area - 8 * min_area_per_neighbor``.
    """

    mode = "closed_form"
    input_range = (0.0, 1.0)
    integrates_layout = False
    uses_selection = False
    lattice_size = 3

    def __init__(
        self,
        max_expansion: float = MAX_EXPANSION,
        min_spacing: float = MIN_SPACING,
        fiber_half_width: float = FIBER_HALF_WIDTH,
        total_area: float = TOTAL_AREA,
        min_area_per_neighbor: float = MIN_AREA_PER_NEIGHBOR,
    ):
        if max_expansion < 1.0:
            raise ValueError(f"max_expansion must be at least 1, got {max_expansion}")
        if min_spacing < MIN_VISIBLE_SPACING:
            raise ValueError(
                f"min_spacing must be at least {MIN_VISIBLE_SPACING}, got {min_spacing}"
            )
        if fiber_half_width <= 0:
            raise ValueError(
                f"fiber_half_width must be positive, got {fiber_half_width}"
            )
        if total_area <= 0:
            raise ValueError(f"total_area must be positive, got {total_area}")
        if min_area_per_neighbor <= 0:
            raise ValueError(
                f"min_area_per_neighbor must be positive, got {min_area_per_neighbor}"
            )
        if max_expansion**2 > total_area - NEIGHBOR_COUNT * min_area_per_neighbor:
            raise ValueError(
                f"max_expansion {max_expansion} leaves less than "
                f"{min_area_per_neighbor} area per neighbour out of {total_area}"
            )
        self.max_expansion = max_expansion
        self.min_spacing = min_spacing
        self.fiber_half_width = fiber_half_width
        self.total_area = total_area
        self.min_area_per_neighbor = min_area_per_neighbor

    def expansion_factor(self, deformation_input: float) -> float:
        return 1.0 + deformation_input * (self.max_expansion - 1.0)

    def area_contraction(self, expansion_factor: float) -> float:
        remaining_area = self.total_area - expansion_factor**2
        return math.sqrt(remaining_area / NEIGHBOR_COUNT)

    def _compute(self, deformation_input, lattice, selection):
        if lattice.size != self.lattice_size:
            raise ValueError(
                f"Closed-form deformation needs a {self.lattice_size}x"
                f"{self.lattice_size} lattice, got {lattice.size}x{lattice.size}"
            )
        if selection is not None:
            logger.debug(f"Ignoring selection {tuple(selection)} of the fixed bundle")

        positions = lattice.static_positions()
        center = lattice.center_index()
        center_position = positions[center.row, center.col]
        distance = torch.linalg.norm(positions - center_position, dim=-1)
        is_center = torch.zeros_like(distance, dtype=torch.bool)
        is_center[center.row, center.col] = True
        if (distance[~is_center] == 0).any():
            raise RuntimeError("A neighbour fiber coincides with the center fiber")

        expansion = self.expansion_factor(deformation_input)
        area_contraction = self.area_contraction(expansion)

        # the center never divides, the neighbours have distance > 0
        divisor = torch.where(is_center, torch.ones_like(distance), distance)
        safe_contraction = (
            distance - expansion * self.fiber_half_width - self.min_spacing
        ) / divisor
        safe_contraction = torch.where(
            is_center, torch.full_like(distance, float("nan")), safe_contraction
        )
        contraction = torch.clamp(safe_contraction, min=area_contraction)
        factors = torch.where(
            is_center, torch.full_like(distance, expansion), contraction
        )

        scale_field = ScaleField.from_factors(
            factors,
            mode=self.mode,
            expansion_factor=expansion,
            area_contraction=area_contraction,
            safe_contraction=safe_contraction,
            center=center,
        )
        total_area = scale_field.total_area()
        if total_area > self.total_area + 1e-9:
            logger.warning(
                f"Overlap bound exceeds the area budget: {total_area:.4f} > "
                f"{self.total_area}"
            )
        logger.debug(
            f"Closed-form expansion {expansion:.4f}, "
            f"area contraction {area_contraction:.4f}"
        )
        return scale_field


class DecayDeformation(DeformationModel):
    """Deformation of an N x N lattice around a selected fiber.

    The selected fiber ``(i0, j0)`` takes the deformation input ``v`` as its
    factor; every other fiber takes

    ``1 + (v - 1) * exp(-decay_rate * sqrt((i - i0)**2 + (j - j0)**2))``.

    Without a selection every factor is 1. The falloff does not conserve the
    total area of the lattice; overlap is prevented by the layout integration
    instead of by a clamp.

    Parameters
    ----------
    decay_rate : float, default 1.5
        Exponential falloff per unit of grid distance, must be positive.
    """

    mode = "decay"
    input_range = (0.5, 2.0)
    integrates_layout = True
    uses_selection = True

    def __init__(self, decay_rate: float = DECAY_RATE):
        if not decay_rate > 0:
            raise ValueError(f"decay_rate must be positive, got {decay_rate}")
        self.decay_rate = decay_rate

    def influence(self, distance: torch.Tensor) -> torch.Tensor:
        return torch.exp(-self.decay_rate * distance)

    def _compute(self, deformation_input, lattice, selection):
        n = lattice.size
        if selection is None:
            factors = torch.ones((n, n), dtype=lattice.dtype, device=lattice.device)
            return ScaleField.from_factors(factors, mode=self.mode)

        lattice.check_index(*selection)
        rows = torch.arange(n, dtype=lattice.dtype, device=lattice.device)
        di, dj = torch.meshgrid(
            rows - selection.row, rows - selection.col, indexing="ij"
        )
        distance = torch.hypot(di, dj)
        factors = 1.0 + (deformation_input - 1.0) * self.influence(distance)
        factors[selection.row, selection.col] = deformation_input
        logger.debug(
            f"Decay deformation {deformation_input:.3f} at {tuple(selection)}"
        )
        return ScaleField.from_factors(factors, mode=self.mode)
