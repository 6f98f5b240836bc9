# lcs/core/gates/__init__.py
"""
Admission gates -- pure decision functions.

Each gate takes a context value and returns a ``GateResult`` with a
PASS / BLOCK / DOWNGRADE verdict.  Gates never touch storage or the
clock except through an optional ``now`` argument.

Canonical imports:
    from lcs.core.gates import check_capacity, check_suppression, check_freshness
    from lcs.core.gates.types import GateContexts, GateResult
"""
from lcs.core.gates.capacity import check_capacity  # noqa: F401
from lcs.core.gates.freshness import check_freshness  # noqa: F401
from lcs.core.gates.suppression import check_suppression  # noqa: F401
from lcs.core.gates.types import (  # noqa: F401
    CapacityContext,
    FreshnessContext,
    GateContexts,
    GateName,
    GateResult,
    GateVerdict,
    SourceFreshness,
    SuppressionContext,
    SuppressionState,
)
