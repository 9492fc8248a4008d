"""
FiberLattice - Poisson Effect on Lattices of Parallel Fibers
=============================================================

FiberLattice computes how a bundle of parallel rigid columns ("fibers")
arranged on a base-space grid responds when one fiber changes its
cross-sectional area. Neighbouring fibers compensate so that the total
cross-sectional area and each fiber's own volume stay constant, fiber
centers never drift, and top faces stay pinned at a fixed height.

Key Components
--------------

Lattice
    - ``FiberLattice.lattice``: Lattice topology, cell access and immutable,
      versioned snapshots

Deformation
    - ``FiberLattice.deformation``: Closed-form (fixed 3x3 center) and
      distance-decay (arbitrary selection) deformation models
    - ``FiberLattice.layout``: Integration of scale factors into a
      non-uniform, non-overlapping position grid
    - ``FiberLattice.session``: Recompute pipeline binding a lattice to a model

Geometry and Visualization
    - ``FiberLattice.geometry``: Fiber meshes, vertex-level height pinning,
      per-instance transforms and base-space grid segments
    - ``FiberLattice.plotting``: Top-down diagnostic plots

Utilities
    - ``FiberLattice.specifications``: Nested, JSON-backed configuration
    - ``FiberLattice.utils``: Logging configuration and color scheme

Examples
--------
Deform the center of the fixed 3x3 bundle::

    from FiberLattice.session import FiberBundle

    bundle = FiberBundle.center_bundle()
    snapshot = bundle.recompute(0.5)
    print(snapshot.cell(1, 1).scale_z)  # 1 / 1.55**2

Select a fiber on a 20x20 lattice and inflate it::

    from FiberLattice.lattice import CellIndex

    bundle = FiberBundle.selection_bundle(size=20, spacing=1.0)
    snapshot = bundle.recompute(2.0, selection=CellIndex(10, 10))
    snapshot.plot()
"""

import FiberLattice.utils

FiberLattice.utils.configure_logging()

__version__ = "0.1.0"
