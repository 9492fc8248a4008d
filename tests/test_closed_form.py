import logging
import math

import pytest
import torch

from FiberLattice.deformation import (
    MAX_EXPANSION,
    TOTAL_AREA,
    ClosedFormDeformation,
)
from FiberLattice.lattice import CellIndex, LatticeState


@pytest.fixture
def lattice():
    return LatticeState(3, spacing=0.5)


@pytest.fixture
def model():
    return ClosedFormDeformation()


def neighbour_mask(scale_field):
    return ~torch.isnan(scale_field.safe_contraction)


def test_zero_input_is_identity(lattice, model):
    scale_field = model(0.0, lattice)
    ones = torch.ones((3, 3), dtype=torch.float64)
    assert torch.allclose(scale_field.scale_xy, ones)
    assert torch.allclose(scale_field.scale_z, ones)
    assert scale_field.expansion_factor == pytest.approx(1.0)


def test_full_input_reaches_max_expansion(lattice, model):
    scale_field = model(1.0, lattice)
    center = scale_field.center
    assert center == CellIndex(1, 1)
    assert scale_field.scale_xy[1, 1].item() == pytest.approx(MAX_EXPANSION)
    assert scale_field.scale_z[1, 1].item() == pytest.approx(1 / MAX_EXPANSION**2)

    mask = neighbour_mask(scale_field)
    assert mask.sum().item() == 8
    assert (scale_field.scale_xy[mask] >= scale_field.safe_contraction[mask]).all()


@pytest.mark.parametrize("deformation_input", [0.0, 0.1, 0.25, 0.5, 0.75, 1.0])
def test_neighbours_never_overlap(lattice, model, deformation_input):
    scale_field = model(deformation_input, lattice)
    mask = neighbour_mask(scale_field)
    assert (scale_field.scale_xy[mask] >= scale_field.safe_contraction[mask]).all()


@pytest.mark.parametrize("deformation_input", [0.0, 0.3, 0.5, 0.8, 1.0])
def test_total_area_is_conserved(lattice, model, deformation_input):
    scale_field = model(deformation_input, lattice)
    mask = neighbour_mask(scale_field)
    # with the default spacing the area-exact contraction never overlaps
    assert (
        scale_field.area_contraction >= scale_field.safe_contraction[mask]
    ).all()
    assert scale_field.total_area() == pytest.approx(TOTAL_AREA)


def test_overlap_bound_wins_over_area(caplog):
    """Spread out the bundle so that the diagonal neighbours hit the overlap
    bound; they keep the safe contraction and the total area grows."""
    lattice = LatticeState(3, spacing=2.0)
    model = ClosedFormDeformation()
    with caplog.at_level(logging.WARNING):
        scale_field = model(1.0, lattice)

    expansion = 2.1
    diagonal = 2.0 * math.sqrt(2)
    safe_diagonal = (diagonal - expansion * 0.2 - 0.1) / diagonal
    assert safe_diagonal > scale_field.area_contraction
    assert scale_field.scale_xy[0, 0].item() == pytest.approx(safe_diagonal)
    assert scale_field.scale_xy[0, 1].item() == pytest.approx(
        scale_field.area_contraction
    )
    assert scale_field.total_area() > TOTAL_AREA
    assert "area budget" in caplog.text


def test_half_input_scenario(lattice, model):
    scale_field = model(0.5, lattice)
    assert scale_field.expansion_factor == pytest.approx(1.55)
    assert scale_field.scale_xy[1, 1].item() == pytest.approx(1.55)
    assert scale_field.scale_z[1, 1].item() == pytest.approx(0.4162, abs=1e-4)
    assert scale_field.area_contraction == pytest.approx(
        math.sqrt((9.0 - 1.55**2) / 8)
    )


def test_every_fiber_keeps_its_volume(lattice, model):
    for deformation_input in torch.linspace(0, 1, 11):
        scale_field = model(deformation_input.item(), lattice)
        volume = scale_field.volume()
        assert torch.allclose(volume, torch.ones_like(volume))


def test_selection_is_ignored(lattice, model):
    with_selection = model(0.5, lattice, CellIndex(0, 0))
    without_selection = model(0.5, lattice)
    assert torch.equal(with_selection.scale_xy, without_selection.scale_xy)


@pytest.mark.parametrize("deformation_input", [-0.1, 1.1, float("nan")])
def test_input_outside_range_is_rejected(lattice, model, deformation_input):
    with pytest.raises(ValueError):
        model(deformation_input, lattice)


def test_other_lattice_sizes_are_rejected(model):
    with pytest.raises(ValueError):
        model(0.5, LatticeState(5, spacing=0.5))


@pytest.mark.parametrize(
    "constants",
    [
        {"max_expansion": 0.5},
        {"max_expansion": 3.0},
        {"min_spacing": 0.01},
        {"fiber_half_width": 0.0},
        {"total_area": -1.0},
        {"min_area_per_neighbor": -0.1},
        {"min_area_per_neighbor": 0.0},
        {"max_expansion": 3.0, "min_area_per_neighbor": 0.0},
        {"max_expansion": 2.9, "min_area_per_neighbor": 0.1},
    ],
)
def test_invalid_constants_are_rejected(constants):
    with pytest.raises(ValueError):
        ClosedFormDeformation(**constants)


def test_tight_area_budget_keeps_neighbours_positive(lattice):
    model = ClosedFormDeformation(max_expansion=2.9, min_area_per_neighbor=0.07)
    scale_field = model(1.0, lattice)
    neighbours = scale_field.scale_xy[neighbour_mask(scale_field)]
    assert (neighbours**2 >= 0.07).all()
    assert (scale_field.scale_z > 0).all()


if __name__ == "__main__":
    lattice = LatticeState(3, spacing=0.5)
    model = ClosedFormDeformation()
    test_zero_input_is_identity(lattice, model)
    test_full_input_reaches_max_expansion(lattice, model)
    test_half_input_scenario(lattice, model)
    test_every_fiber_keeps_its_volume(lattice, model)
