"""
multibody.constants

Physical coefficient and sampling defaults shared across the package.
"""
from __future__ import annotations

# ============================================================================
# PHYSICAL CONSTANTS
# ============================================================================

# The "nu" constant in front of the Axilrod-Teller potential
AXILROD_TELLER_COEFF = 1e-18

# Interaction order of the kernel (triples)
KERNEL_ORDER = 3

# ============================================================================
# MONTE CARLO DEFAULTS
# ============================================================================

# Samples drawn per round before the error is re-estimated
MC_BATCH_SIZE = 25

# Hard cap on accepted samples per node triple
MC_MAX_NUM_SAMPLES = 250

# Draws allowed per accepted sample before sampling gives up
MC_MAX_DRAWS_PER_SAMPLE = 100

# Role orderings (a, b, c): role r bounds the pair (a, b), with c the third entity.
ROLE_ORDERS = ((0, 1, 2), (0, 2, 1), (2, 1, 0))
