"""multibody: tree-accelerated Axilrod-Teller 3-body forces."""

from importlib.metadata import version as _version_lookup, PackageNotFoundError

# --- Versioning ---
try:
    # This works if the package was installed via 'pip install .'
    __version__ = _version_lookup("multibody")
except PackageNotFoundError:
    __version__ = "unknown"

# --- Public API ---

# From .constants
from .constants import AXILROD_TELLER_COEFF

# From .statistic
from .statistic import MultibodyStat, ForceAccumulators

# From .tree
from .tree import SpatialNode, KdNode, build_kdtree

# From .gradients
from .gradients import GradientBounds

# From .errors
from .errors import confidence_to_z_score

# From .pruning
from .pruning import compute_num_two_tuples

# From .kernel
from .kernel import AxilrodTellerForceKernel

# From .direct
from .direct import compute_three_body_forces_direct

# Define what "from multibody import *" does
__all__ = [
    "__version__",
    "AXILROD_TELLER_COEFF",
    "AxilrodTellerForceKernel",
    "MultibodyStat",
    "ForceAccumulators",
    "SpatialNode",
    "KdNode",
    "build_kdtree",
    "GradientBounds",
    "confidence_to_z_score",
    "compute_num_two_tuples",
    "compute_three_body_forces_direct",
]
