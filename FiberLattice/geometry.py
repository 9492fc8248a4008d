"""
Fiber Geometry
==============

Geometry consumed by renderers: fiber meshes, the vertex-level height
pinning of the closed-form bundle, per-instance transforms and the
base-space grid.

Fibers are boxes (the fixed 3x3 bundle) or cylinders (the selection
lattice) with their center at height 0. Deforming a fiber scales its
cross-section by ``scale_xy`` around its own center. In the closed-form
bundle only the bottom half is stretched in height (by ``1 / scale_xy**2``),
so that the top face stays where it is. Every other fiber is scaled in
height by ``scale_z`` about its center, as its instance transform does.
"""

import logging
import math

import gustaf as gus
import torch

import FiberLattice
from FiberLattice.deformation import FIBER_HALF_WIDTH, ClosedFormDeformation
from FiberLattice.layout import grid_segments as _grid_segments
from FiberLattice.lattice import LatticeSnapshot, LatticeState

logger = logging.getLogger(FiberLattice.__name__)

FIBER_HALF_HEIGHT = 0.5

# fibers of the selection lattice
FIBER_RADIUS = 0.4
FIBER_HEIGHT = 10.0
FIBER_RESOLUTION = 16

# bottom, top, then the four sides
_BOX_FACES = torch.tensor(
    [
        [0, 1, 2],
        [0, 2, 3],
        [4, 5, 6],
        [4, 6, 7],
        [0, 1, 5],
        [0, 5, 4],
        [1, 2, 6],
        [1, 6, 5],
        [2, 3, 7],
        [2, 7, 6],
        [3, 0, 4],
        [3, 4, 7],
    ],
    dtype=torch.int64,
)


class FiberMesh:
    """Triangle mesh of a fiber bundle.

    Parameters
    ----------
    vertices : torch.Tensor
        Vertex coordinates of shape (M, 3).
    faces : torch.Tensor
        Triangle vertex indices of shape (F, 3).
    cell_ids : torch.Tensor
        Instance id of the fiber owning each vertex, shape (M,).
    centers : torch.Tensor
        Center of every fiber in instance order, shape (N * N, 3).
    """

    def __init__(
        self,
        vertices: torch.Tensor,
        faces: torch.Tensor,
        cell_ids: torch.Tensor,
        centers: torch.Tensor,
    ):
        self.vertices = vertices
        self.faces = faces
        self.cell_ids = cell_ids
        self.centers = centers

    @property
    def n_fibers(self) -> int:
        return self.centers.shape[0]

    def to_gus(self):
        return gus.Faces(
            vertices=self.vertices.detach().cpu().numpy(),
            faces=self.faces.detach().cpu().numpy(),
        )

    def show(self):
        gus.show(self.to_gus(), axes=1)


def fiber_box(
    center,
    half_width: float = FIBER_HALF_WIDTH,
    half_height: float = FIBER_HALF_HEIGHT,
    dtype=torch.float64,
    device="cpu",
) -> tuple[torch.Tensor, torch.Tensor]:
    """Vertices (8, 3) and triangles (12, 3) of a single box fiber.

    ``center`` may be a planar (2,) or a full (3,) coordinate.
    """
    if half_width <= 0 or half_height <= 0:
        raise ValueError(
            f"half_width and half_height must be positive, "
            f"got {half_width} and {half_height}"
        )
    center = torch.as_tensor(center, dtype=dtype, device=device)
    if center.shape == (2,):
        center = torch.cat([center, center.new_zeros(1)])
    corners = half_width * torch.tensor(
        [[-1, -1], [1, -1], [1, 1], [-1, 1]], dtype=dtype, device=device
    )
    bottom = torch.cat([corners, corners.new_full((4, 1), -half_height)], dim=1)
    top = torch.cat([corners, corners.new_full((4, 1), half_height)], dim=1)
    vertices = torch.cat([bottom, top], dim=0) + center
    return vertices, _BOX_FACES.clone().to(device)


def fiber_cylinder(
    center,
    radius: float = FIBER_RADIUS,
    height: float = FIBER_HEIGHT,
    resolution: int = FIBER_RESOLUTION,
    dtype=torch.float64,
    device="cpu",
) -> tuple[torch.Tensor, torch.Tensor]:
    """Vertices (2 * resolution + 2, 3) and triangles (4 * resolution, 3) of
    a closed cylinder fiber.

    The bottom ring comes first, then the top ring, then the centers of the
    bottom and the top cap. The first ring vertex lies on the positive x
    axis.
    """
    if resolution < 3:
        raise ValueError(f"resolution must be at least 3, got {resolution}")
    if radius <= 0 or height <= 0:
        raise ValueError(
            f"radius and height must be positive, got {radius} and {height}"
        )
    center = torch.as_tensor(center, dtype=dtype, device=device)
    if center.shape == (2,):
        center = torch.cat([center, center.new_zeros(1)])

    angles = torch.arange(resolution, dtype=dtype, device=device) * (
        2 * math.pi / resolution
    )
    ring = radius * torch.stack([torch.cos(angles), torch.sin(angles)], dim=1)
    half_height = height / 2
    bottom = torch.cat([ring, ring.new_full((resolution, 1), -half_height)], dim=1)
    top = torch.cat([ring, ring.new_full((resolution, 1), half_height)], dim=1)
    caps = torch.tensor(
        [[0.0, 0.0, -half_height], [0.0, 0.0, half_height]],
        dtype=dtype,
        device=device,
    )
    vertices = torch.cat([bottom, top, caps], dim=0) + center

    i = torch.arange(resolution, device=device)
    j = (i + 1) % resolution
    bottom_center = torch.full_like(i, 2 * resolution)
    top_center = torch.full_like(i, 2 * resolution + 1)
    faces = torch.cat(
        [
            torch.stack([i, j, resolution + j], dim=1),
            torch.stack([i, resolution + j, resolution + i], dim=1),
            torch.stack([bottom_center, j, i], dim=1),
            torch.stack([top_center, resolution + i, resolution + j], dim=1),
        ],
        dim=0,
    )
    return vertices, faces


def fiber_mesh(shape: str = "box", dtype=torch.float64, device="cpu", **params):
    """A single fiber centered at the origin.

    Parameters
    ----------
    shape : str, default "box"
        ``"box"`` (see :func:`fiber_box`) or ``"cylinder"``
        (see :func:`fiber_cylinder`).
    **params
        Size parameters of the chosen shape.
    """
    origin = (0.0, 0.0, 0.0)
    match shape:
        case "box":
            return fiber_box(origin, dtype=dtype, device=device, **params)
        case "cylinder":
            return fiber_cylinder(origin, dtype=dtype, device=device, **params)
        case _:
            raise ValueError(f"shape must be 'box' or 'cylinder', got {shape!r}")


def bundle_mesh(lattice: LatticeState, shape: str = "box", **params) -> FiberMesh:
    """One undeformed fiber per lattice cell, in instance order.

    ``shape`` and ``params`` select the fiber, see :func:`fiber_mesh`.
    """
    n_fibers = lattice.size**2
    planar = lattice.static_positions().reshape(-1, 2)
    centers = torch.cat([planar, planar.new_zeros(n_fibers, 1)], dim=1)

    fiber_vertices, fiber_faces = fiber_mesh(
        shape, dtype=lattice.dtype, device=lattice.device, **params
    )
    vertices = (fiber_vertices[None, :, :] + centers[:, None, :]).reshape(-1, 3)
    offsets = fiber_vertices.shape[0] * torch.arange(n_fibers, device=lattice.device)
    faces = (fiber_faces[None, :, :] + offsets[:, None, None]).reshape(-1, 3)
    cell_ids = torch.arange(n_fibers, device=lattice.device).repeat_interleave(
        fiber_vertices.shape[0]
    )
    logger.debug(f"Created bundle mesh with {n_fibers} {shape} fibers")
    return FiberMesh(vertices, faces, cell_ids, centers)


def pin_height(
    vertices: torch.Tensor, centers: torch.Tensor, scale_xy: torch.Tensor
) -> torch.Tensor:
    """Vertex-level deformation with a pinned top face.

    Works in the fiber-local frame: the planar offset from the fiber center
    is scaled by ``scale_xy``; a negative local height is multiplied by
    ``1 / scale_xy**2`` and a non-negative one is kept.

    Parameters
    ----------
    vertices : torch.Tensor
        Vertex coordinates of shape (M, 3).
    centers : torch.Tensor
        Center of the fiber owning each vertex, shape (M, 3).
    scale_xy : torch.Tensor
        Planar scale of the fiber owning each vertex, shape (M,).

    Returns
    -------
    torch.Tensor
        Deformed vertices of shape (M, 3).
    """
    local = vertices - centers
    planar = local[:, :2] * scale_xy[:, None]
    height = torch.where(local[:, 2] < 0, local[:, 2] / scale_xy**2, local[:, 2])
    return torch.cat([planar, height[:, None]], dim=1) + centers


def scale_about_center(
    vertices: torch.Tensor,
    centers: torch.Tensor,
    scale_xy: torch.Tensor,
    scale_z: torch.Tensor,
) -> torch.Tensor:
    """Scale every vertex about its fiber center, the planar offset by
    ``scale_xy`` and the height by ``scale_z``. Matches
    :func:`instance_matrices` applied to a fiber centered at the origin."""
    local = vertices - centers
    scale = torch.stack([scale_xy, scale_xy, scale_z], dim=1)
    return local * scale + centers


def deform_mesh(mesh: FiberMesh, snapshot: LatticeSnapshot) -> FiberMesh:
    """Move every fiber of an undeformed bundle mesh to its snapshot position
    and scale it with its snapshot scales.

    Closed-form snapshots use :func:`pin_height`, all others
    :func:`scale_about_center`.
    """
    if mesh.n_fibers != snapshot.size**2:
        raise ValueError(
            f"Mesh with {mesh.n_fibers} fibers does not fit a "
            f"{snapshot.size}x{snapshot.size} snapshot"
        )
    planar = snapshot.positions.reshape(-1, 2).to(mesh.vertices)
    new_centers = torch.cat([planar, mesh.centers[:, 2:]], dim=1)
    scale_xy = snapshot.scale_xy.reshape(-1).to(mesh.vertices)[mesh.cell_ids]
    centers = new_centers[mesh.cell_ids]

    moved = mesh.vertices - mesh.centers[mesh.cell_ids] + centers
    if snapshot.scale_field.mode == ClosedFormDeformation.mode:
        vertices = pin_height(moved, centers, scale_xy)
    else:
        scale_z = snapshot.scale_z.reshape(-1).to(mesh.vertices)[mesh.cell_ids]
        vertices = scale_about_center(moved, centers, scale_xy, scale_z)
    return FiberMesh(vertices, mesh.faces, mesh.cell_ids, new_centers)


def instance_matrices(snapshot: LatticeSnapshot, up_axis: str = "z") -> torch.Tensor:
    """Per-instance affine transforms of shape (N * N, 4, 4).

    Instances are ordered ``row * N + col``. Matrices act on column vectors:
    the diagonal holds the anisotropic scale and the last column the
    translation to the fiber position. ``up_axis`` selects the height axis
    of the consumer, ``"z"`` (planar x, y) or ``"y"`` (planar x, z).
    """
    match up_axis:
        case "z":
            first, second, up = 0, 1, 2
        case "y":
            first, second, up = 0, 2, 1
        case _:
            raise ValueError(f"up_axis must be 'z' or 'y', got {up_axis!r}")

    positions = snapshot.positions.reshape(-1, 2)
    scale_xy = snapshot.scale_xy.reshape(-1)
    scale_z = snapshot.scale_z.reshape(-1)

    matrices = positions.new_zeros((positions.shape[0], 4, 4))
    matrices[:, first, first] = scale_xy
    matrices[:, second, second] = scale_xy
    matrices[:, up, up] = scale_z
    matrices[:, first, 3] = positions[:, 0]
    matrices[:, second, 3] = positions[:, 1]
    matrices[:, 3, 3] = 1.0
    return matrices


def grid_segments(snapshot: LatticeSnapshot) -> tuple[torch.Tensor, torch.Tensor]:
    """Base-space grid segments of a snapshot; see
    :func:`FiberLattice.layout.grid_segments`."""
    return _grid_segments(snapshot.positions)
