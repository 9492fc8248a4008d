"""
Recompute Pipeline
==================

A recompute pass reads the current deformation input and selection, lets
the deformation model compute a scale field, derives the positions and
wraps both in a new :class:`~FiberLattice.lattice.LatticeSnapshot`.

:func:`recompute` is a pure function that leaves the lattice untouched and
can be called from any scheduling context (render loop, timer, test).
:class:`FiberBundle` binds one lattice to one model, checks and commits
each snapshot so that consumers only ever see complete passes.
"""

import logging

import torch

import FiberLattice
from FiberLattice.deformation import (
    DECAY_RATE,
    ClosedFormDeformation,
    DecayDeformation,
    DeformationModel,
)
from FiberLattice.geometry import (
    FIBER_HALF_HEIGHT,
    FIBER_HALF_WIDTH,
    FIBER_HEIGHT,
    FIBER_RADIUS,
    FIBER_RESOLUTION,
    FiberMesh,
    bundle_mesh,
    deform_mesh,
    fiber_mesh,
)
from FiberLattice.layout import LatticeLayoutIntegrator, check_monotonic
from FiberLattice.lattice import CellIndex, LatticeSnapshot, LatticeState
from FiberLattice.specifications import LatticeSpecifications

logger = logging.getLogger(FiberLattice.__name__)


def recompute(
    lattice: LatticeState,
    model: DeformationModel,
    deformation_input: float,
    selection: CellIndex | tuple[int, int] | None = None,
) -> LatticeSnapshot:
    """Compute the successor snapshot of a lattice without committing it.

    Parameters
    ----------
    lattice : LatticeState
        Lattice to deform. Only read.
    model : DeformationModel
        Model producing the scale field.
    deformation_input : float
        Current deformation input.
    selection : CellIndex, optional
        Currently selected cell. Dropped from the snapshot if the model
        does not use a selection.

    Returns
    -------
    LatticeSnapshot
        Snapshot with version ``lattice.version + 1``.
    """
    if selection is not None:
        selection = CellIndex(*selection)
    scale_field = model(deformation_input, lattice, selection)
    if model.integrates_layout:
        integrator = LatticeLayoutIntegrator.for_lattice(lattice)
        positions = integrator(scale_field.factors)
    else:
        positions = lattice.static_positions()
    return lattice.build_snapshot(
        scale_field,
        positions,
        selection=selection if model.uses_selection else None,
        deformation_input=float(deformation_input),
    )


class FiberBundle:
    """A lattice of fibers together with the model that deforms it.

    Parameters
    ----------
    lattice : LatticeState
        The lattice owned by this bundle.
    model : DeformationModel
        The deformation model applied on every recompute.
    fiber : dict, optional
        Shape and size of a single fiber, passed on to
        :func:`FiberLattice.geometry.fiber_mesh`. Defaults to a box of half
        width 0.2 and half height 0.5.

    Examples
    --------
    >>> from FiberLattice.session import FiberBundle
    >>> bundle = FiberBundle.center_bundle()
    >>> snapshot = bundle.recompute(0.5)
    >>> round(snapshot.cell(1, 1).scale_xy, 2)
    1.55
    """

    def __init__(
        self,
        lattice: LatticeState,
        model: DeformationModel,
        fiber: dict | None = None,
    ):
        if not isinstance(lattice, LatticeState):
            raise TypeError("Lattice must be of type LatticeState")
        if not isinstance(model, DeformationModel):
            raise TypeError("Model must be of type DeformationModel")
        if fiber is None:
            fiber = {
                "shape": "box",
                "half_width": FIBER_HALF_WIDTH,
                "half_height": FIBER_HALF_HEIGHT,
            }
        # fails early on an unknown shape or invalid sizes
        fiber_mesh(**fiber)
        self.lattice = lattice
        self.model = model
        self.fiber = dict(fiber)

    @classmethod
    def center_bundle(cls, spacing: float = 0.5, fiber: dict | None = None, **constants):
        """The fixed 3x3 bundle of box fibers deformed around its center fiber.

        ``constants`` are passed on to :class:`ClosedFormDeformation`.
        """
        lattice = LatticeState(ClosedFormDeformation.lattice_size, spacing)
        return cls(lattice, ClosedFormDeformation(**constants), fiber)

    @classmethod
    def selection_bundle(
        cls,
        size: int = 20,
        spacing: float = 1.0,
        decay_rate: float = DECAY_RATE,
        fiber: dict | None = None,
    ):
        """An N x N lattice of cylinder fibers deformed around a selected
        fiber."""
        if fiber is None:
            fiber = {
                "shape": "cylinder",
                "radius": FIBER_RADIUS,
                "height": FIBER_HEIGHT,
                "resolution": FIBER_RESOLUTION,
            }
        return cls(LatticeState(size, spacing), DecayDeformation(decay_rate), fiber)

    @classmethod
    def from_specifications(cls, specs: LatticeSpecifications | dict | str, mode="decay"):
        if not isinstance(specs, LatticeSpecifications):
            specs = LatticeSpecifications(specs)
        match mode:
            case "decay":
                return cls(
                    LatticeState(**specs.lattice_parameters()),
                    DecayDeformation(**specs.decay_parameters()),
                    specs.fiber_parameters("cylinder"),
                )
            case "closed_form":
                return cls.center_bundle(
                    specs["ClosedForm"]["spacing"],
                    specs.fiber_parameters("box"),
                    **specs.closed_form_parameters(),
                )
            case _:
                raise ValueError(f"Mode must be 'decay' or 'closed_form', got {mode!r}")

    @property
    def snapshot(self) -> LatticeSnapshot:
        return self.lattice.snapshot

    def recompute(
        self,
        deformation_input: float,
        selection: CellIndex | tuple[int, int] | None = None,
    ) -> LatticeSnapshot:
        """Run one complete pass and commit its snapshot."""
        snapshot = recompute(self.lattice, self.model, deformation_input, selection)
        self._sanity_check(snapshot)
        self.lattice.commit(snapshot)
        logger.debug(
            f"Recomputed {self.model.mode} bundle with input {deformation_input} "
            f"(version {snapshot.version})"
        )
        return snapshot

    def _sanity_check(self, snapshot: LatticeSnapshot):
        """Check the invariants of a snapshot before it is committed.

        Raises
        ------
        RuntimeError
            If a fiber lost volume or, for integrated layouts, the positions
            are not strictly increasing.
        """
        volume = snapshot.scale_field.volume()
        if not torch.allclose(volume, torch.ones_like(volume)):
            raise RuntimeError("Fiber volume is not conserved")
        if self.model.integrates_layout:
            check_monotonic(snapshot.positions)

    def mesh(self, **fiber) -> FiberMesh:
        """Mesh of the bundle deformed according to the latest snapshot.

        Keyword arguments override entries of :attr:`fiber`.
        """
        return deform_mesh(
            bundle_mesh(self.lattice, **{**self.fiber, **fiber}), self.snapshot
        )

    def __repr__(self):
        return f"FiberBundle({self.lattice!r}, model={self.model.mode!r})"
