"""
Visualization and Plotting Utilities
=====================================

This module provides top-down diagnostic views of lattice snapshots.

Functions
---------
plot_base_space
    Draw the deformed base-space grid and the cross-section of every fiber.
plot_scale_field
    Show the deformation factors of a snapshot as an image.

Both are meant for checking the deformation and layout during development,
not as a renderer.
"""

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import LineCollection
from matplotlib.patches import Rectangle

from FiberLattice.layout import grid_segments
from FiberLattice.utils import rgb


def plot_base_space(
    snapshot,
    ax=None,
    half_width=0.2,
    selection=None,
    show_grid=True,
    alpha=0.8,
):
    """Plot a snapshot seen from above.

    Every fiber is drawn as a square of side ``2 * half_width * scale_xy``
    centered at its position. The selected fiber (or, for the closed-form
    bundle, the center fiber) is highlighted.

    Parameters
    ----------
    snapshot : LatticeSnapshot
        The snapshot to draw.
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates a new figure.
    half_width : float, default 0.2
        Half width of an undeformed fiber.
    selection : CellIndex, optional
        Cell to highlight. Defaults to the selection stored in the snapshot.
    show_grid : bool, default True
        If True, draws the line segments joining neighbouring fibers.
    alpha : float, default 0.8
        Opacity of the fiber squares.

    Returns
    -------
    fig, ax : matplotlib.figure.Figure, matplotlib.axes.Axes
        Only returned if ax was None (i.e., a new figure was created).

    Examples
    --------
    >>> from FiberLattice.session import FiberBundle
    >>> from FiberLattice.plotting import plot_base_space
    >>>
    >>> bundle = FiberBundle.selection_bundle(size=10)
    >>> snapshot = bundle.recompute(1.8, selection=(4, 4))
    >>> fig, ax = plot_base_space(snapshot, half_width=0.4)
    """
    plt_show = False
    if ax is None:
        fig, ax = plt.subplots()
        plt_show = True

    if selection is None:
        selection = snapshot.selection
    center = snapshot.scale_field.center
    positions = snapshot.positions.detach().cpu().numpy()
    scale_xy = snapshot.scale_xy.detach().cpu().numpy()

    if show_grid:
        for segments in grid_segments(snapshot.positions):
            lines = segments.reshape(-1, 2, 2).detach().cpu().numpy()
            ax.add_collection(
                LineCollection(lines, colors=[rgb("grid")], linewidths=0.5)
            )

    for row in range(snapshot.size):
        for col in range(snapshot.size):
            if selection is not None and (row, col) == tuple(selection):
                color = rgb("selected")
            elif center is not None:
                color = rgb("center") if (row, col) == tuple(center) else rgb("neighbor")
            else:
                color = rgb("normal")
            side = 2 * half_width * scale_xy[row, col]
            x, y = positions[row, col]
            ax.add_patch(
                Rectangle(
                    (x - side / 2, y - side / 2),
                    side,
                    side,
                    facecolor=color,
                    edgecolor="black",
                    linewidth=0.3,
                    alpha=alpha,
                )
            )

    ax.autoscale_view()
    ax.set_aspect(1)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    if plt_show:
        plt.show()
        return fig, ax


def plot_scale_field(snapshot, ax=None, cmap="coolwarm", clim=None):
    """Show the deformation factors of a snapshot as an image.

    Rows of the lattice run along the horizontal axis so that the image has
    the same orientation as :func:`plot_base_space`. The color limits default
    to a range symmetric around the neutral factor 1.
    """
    plt_show = False
    if ax is None:
        fig, ax = plt.subplots()
        plt_show = True

    factors = snapshot.factors.detach().cpu().numpy()
    if clim is None:
        spread = max(float(np.abs(factors - 1.0).max()), 1e-6)
        clim = (1.0 - spread, 1.0 + spread)
    image = ax.imshow(
        factors.T, origin="lower", cmap=cmap, vmin=clim[0], vmax=clim[1]
    )
    ax.figure.colorbar(image, ax=ax, label="deformation factor")
    ax.set_xticks([])
    ax.set_yticks([])
    if plt_show:
        plt.show()
        return fig, ax
