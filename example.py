from FiberLattice.lattice import CellIndex
from FiberLattice.plotting import plot_scale_field
from FiberLattice.session import FiberBundle

bundle = FiberBundle.center_bundle()
snapshot = bundle.recompute(0.5)
print(snapshot.cell(1, 1))
snapshot.plot()
bundle.mesh().show()


bundle = FiberBundle.selection_bundle(size=20, spacing=1.0)
snapshot = bundle.recompute(2.0, selection=CellIndex(10, 10))

snapshot.plot(half_width=0.4)
plot_scale_field(snapshot)
