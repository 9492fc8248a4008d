import math

import pytest
import torch

from FiberLattice.deformation import DecayDeformation
from FiberLattice.lattice import CellIndex, LatticeState, ScaleField


@pytest.fixture
def lattice():
    return LatticeState(5, spacing=1.0)


def test_no_selection_is_neutral(lattice):
    model = DecayDeformation()
    for deformation_input in [0.5, 1.0, 2.0]:
        scale_field = model(deformation_input, lattice, None)
        assert torch.equal(scale_field.factors, torch.ones((5, 5), dtype=torch.float64))


def test_selected_fiber_takes_input(lattice):
    scale_field = DecayDeformation()(2.0, lattice, CellIndex(2, 2))
    factors = scale_field.factors

    assert factors[2, 2].item() == 2.0
    assert factors[2, 3].item() == pytest.approx(1 + math.exp(-1.5))
    assert factors[1, 2].item() == pytest.approx(1 + math.exp(-1.5))
    assert factors[3, 3].item() == pytest.approx(1 + math.exp(-1.5 * math.sqrt(2)))
    assert factors[0, 0].item() == pytest.approx(1 + math.exp(-1.5 * math.sqrt(8)))


def test_shrinking_selection(lattice):
    factors = DecayDeformation()(0.5, lattice, (0, 4)).factors
    assert factors[0, 4].item() == 0.5
    assert factors[1, 4].item() == pytest.approx(1 - 0.5 * math.exp(-1.5))
    assert (factors < 1).all()


@pytest.mark.parametrize("deformation_input", [0.5, 0.75, 1.0, 1.5, 2.0])
@pytest.mark.parametrize("selection", [(0, 0), (2, 2), (4, 1), None])
def test_volume_is_conserved(lattice, deformation_input, selection):
    scale_field = DecayDeformation()(deformation_input, lattice, selection)
    volume = scale_field.volume()
    assert torch.allclose(volume, torch.ones_like(volume))
    assert torch.allclose(scale_field.scale_xy, scale_field.factors)


def test_larger_decay_rate_localizes():
    lattice = LatticeState(5)
    wide = DecayDeformation(decay_rate=1.5)(2.0, lattice, (2, 2)).factors
    narrow = DecayDeformation(decay_rate=3.0)(2.0, lattice, (2, 2)).factors
    assert narrow[2, 3] < wide[2, 3]
    assert narrow[2, 2] == wide[2, 2]


def test_single_cell_lattice():
    scale_field = DecayDeformation()(1.7, LatticeState(1), (0, 0))
    assert scale_field.factors[0, 0].item() == 1.7


def test_selection_outside_lattice_is_rejected(lattice):
    with pytest.raises(IndexError):
        DecayDeformation()(1.5, lattice, (5, 0))
    with pytest.raises(IndexError):
        DecayDeformation()(1.5, lattice, (0, -1))


@pytest.mark.parametrize("deformation_input", [0.49, 2.01])
def test_input_outside_range_is_rejected(lattice, deformation_input):
    with pytest.raises(ValueError):
        DecayDeformation()(deformation_input, lattice, (2, 2))


@pytest.mark.parametrize("decay_rate", [0.0, -1.0])
def test_invalid_decay_rate_is_rejected(decay_rate):
    with pytest.raises(ValueError):
        DecayDeformation(decay_rate)


class CollapsingDeformation(DecayDeformation):
    def _compute(self, deformation_input, lattice, selection):
        factors = torch.ones((lattice.size, lattice.size), dtype=torch.float64)
        factors[0, 0] = 0.0
        return ScaleField.from_factors(factors, mode=self.mode)


def test_collapsed_fibers_are_rejected(lattice):
    with pytest.raises(RuntimeError):
        CollapsingDeformation()(1.5, lattice)


if __name__ == "__main__":
    lattice = LatticeState(5, spacing=1.0)
    test_no_selection_is_neutral(lattice)
    test_selected_fiber_takes_input(lattice)
    test_larger_decay_rate_localizes()
