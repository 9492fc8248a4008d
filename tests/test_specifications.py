import pytest

from FiberLattice.deformation import DECAY_RATE, MAX_EXPANSION
from FiberLattice.specifications import DEFAULT_SPECIFICATIONS, LatticeSpecifications


def test_defaults():
    specs = LatticeSpecifications()
    assert specs == DEFAULT_SPECIFICATIONS
    assert specs["ClosedForm"]["max_expansion"] == MAX_EXPANSION
    assert specs.decay_parameters() == {"decay_rate": DECAY_RATE}
    assert "spacing" not in specs.closed_form_parameters()
    assert specs.fiber_parameters("cylinder") == {
        "shape": "cylinder",
        "radius": 0.4,
        "height": 10.0,
        "resolution": 16,
    }
    assert specs.fiber_parameters("box")["half_height"] == 0.5
    specs.validate()


def test_recursive_update_keeps_other_values():
    specs = LatticeSpecifications()
    specs.update({"Lattice": {"size": 12}, "ClosedForm": {"min_spacing": 0.2}})
    assert specs["Lattice"] == {"size": 12, "spacing": 1.0}
    assert specs["ClosedForm"]["min_spacing"] == 0.2
    assert specs["ClosedForm"]["max_expansion"] == MAX_EXPANSION
    # the module defaults are untouched
    assert DEFAULT_SPECIFICATIONS["Lattice"]["size"] == 20


def test_copy_is_independent():
    specs = LatticeSpecifications()
    duplicate = specs.copy()
    duplicate.update({"Decay": {"decay_rate": 4.0}})
    assert specs["Decay"]["decay_rate"] == DECAY_RATE


def test_save_and_load(tmp_path):
    filename = str(tmp_path / "bundle.json")
    specs = LatticeSpecifications({"Lattice": {"size": 9, "spacing": 0.75}})
    specs.save(filename)
    loaded = LatticeSpecifications(filename)
    assert loaded == specs
    assert loaded.lattice_parameters() == {"size": 9, "spacing": 0.75}


def test_unsupported_file_format(tmp_path):
    with pytest.raises(ValueError):
        LatticeSpecifications(str(tmp_path / "bundle.yaml"))
    with pytest.raises(ValueError):
        LatticeSpecifications().save(str(tmp_path / "bundle.yaml"))


@pytest.mark.parametrize(
    "overrides",
    [
        {"Lattice": {"size": 0}},
        {"Lattice": {"spacing": -1.0}},
        {"ClosedForm": {"spacing": 0.0}},
        {"ClosedForm": {"max_expansion": 3.0}},
        {"ClosedForm": {"min_spacing": 0.01}},
        {"Decay": {"decay_rate": 0.0}},
        {"Fiber": {"box": {"half_width": 0.0}}},
        {"Fiber": {"cylinder": {"resolution": 2}}},
    ],
)
def test_validate_rejects_invalid_values(overrides):
    specs = LatticeSpecifications(overrides)
    with pytest.raises(ValueError):
        specs.validate()


if __name__ == "__main__":
    test_defaults()
    test_recursive_update_keeps_other_values()
    test_copy_is_independent()
