import copy
import json
from typing import Any, Dict, Union

from FiberLattice.deformation import (
    DECAY_RATE,
    FIBER_HALF_WIDTH,
    MAX_EXPANSION,
    MIN_AREA_PER_NEIGHBOR,
    MIN_SPACING,
    TOTAL_AREA,
    ClosedFormDeformation,
    DecayDeformation,
)
from FiberLattice.geometry import (
    FIBER_HALF_HEIGHT,
    FIBER_HEIGHT,
    FIBER_RADIUS,
    FIBER_RESOLUTION,
    fiber_mesh,
)
from FiberLattice.lattice import LatticeState

DEFAULT_SPECIFICATIONS = {
    "Lattice": {"size": 20, "spacing": 1.0},
    "ClosedForm": {
        "spacing": 0.5,
        "max_expansion": MAX_EXPANSION,
        "min_spacing": MIN_SPACING,
        "fiber_half_width": FIBER_HALF_WIDTH,
        "total_area": TOTAL_AREA,
        "min_area_per_neighbor": MIN_AREA_PER_NEIGHBOR,
    },
    "Decay": {"decay_rate": DECAY_RATE},
    "Fiber": {
        "box": {"half_width": FIBER_HALF_WIDTH, "half_height": FIBER_HALF_HEIGHT},
        "cylinder": {
            "radius": FIBER_RADIUS,
            "height": FIBER_HEIGHT,
            "resolution": FIBER_RESOLUTION,
        },
    },
}


class LatticeSpecifications(dict):
    """
    A dictionary-like class holding the construction parameters of a fiber
    bundle: the ``Lattice`` section (size and spacing of the selection
    lattice), the ``ClosedForm`` section (spacing and constants of the fixed
    3x3 bundle), the ``Decay`` section and the ``Fiber`` section (sizes of
    the box fibers of the 3x3 bundle and the cylinder fibers of the selection
    lattice).
    Missing entries fall back to ``DEFAULT_SPECIFICATIONS``.
    Supports recursive updates for nested dictionaries.
    """

    def __init__(self, specs: Union[Dict[str, Any], str, None] = None):
        """
        Initialize the LatticeSpecifications.

        Args:
            specs: A dictionary of overrides, a JSON file path,
                   or None for the defaults.
        """
        super().__init__(copy.deepcopy(DEFAULT_SPECIFICATIONS))
        if isinstance(specs, str):
            self.update(self._load_from_file(specs))
        elif specs:
            self.update(copy.deepcopy(specs))

    @staticmethod
    def _load_from_file(filename: str) -> Dict[str, Any]:
        """
        Load specifications from a JSON file.
        """
        if not filename.endswith(".json"):
            raise ValueError("Unsupported file format. Use .json")
        with open(filename, "r") as f:
            return json.load(f)

    def save(self, filename: str) -> None:
        """
        Save current specifications to a JSON file.
        """
        if not filename.endswith(".json"):
            raise ValueError("Unsupported file format. Use .json")
        with open(filename, "w") as f:
            json.dump(self, f, indent=4)

    def update(self, updates: Dict[str, Any]) -> None:
        """
        Recursively update the specifications with new values.
        """

        def _recursive_update(d, u):
            for k, v in u.items():
                if isinstance(v, dict) and isinstance(d.get(k), dict):
                    _recursive_update(d[k], v)
                else:
                    d[k] = v

        _recursive_update(self, updates)

    def lattice_parameters(self) -> Dict[str, Any]:
        return dict(self["Lattice"])

    def closed_form_parameters(self) -> Dict[str, Any]:
        """Constants of :class:`ClosedFormDeformation` (without the spacing)."""
        params = dict(self["ClosedForm"])
        params.pop("spacing", None)
        return params

    def decay_parameters(self) -> Dict[str, Any]:
        return dict(self["Decay"])

    def fiber_parameters(self, shape: str) -> Dict[str, Any]:
        """Keyword arguments of :func:`FiberLattice.geometry.fiber_mesh`."""
        return {"shape": shape, **self["Fiber"][shape]}

    def validate(self) -> None:
        """
        Build every configured object once so that invalid values raise
        the same ValueError they would raise at construction.
        """
        LatticeState(**self.lattice_parameters())
        LatticeState(ClosedFormDeformation.lattice_size, self["ClosedForm"]["spacing"])
        ClosedFormDeformation(**self.closed_form_parameters())
        DecayDeformation(**self.decay_parameters())
        fiber_mesh(**self.fiber_parameters("box"))
        fiber_mesh(**self.fiber_parameters("cylinder"))

    def copy(self):
        """Return a deep copy of the specifications."""
        return LatticeSpecifications(copy.deepcopy(dict(self)))

    def __repr__(self):
        return f"LatticeSpecifications({dict(self)})"
