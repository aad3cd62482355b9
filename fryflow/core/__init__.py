"""Core domain logic for fryflow.

Contains the error taxonomy and resolved configuration types. The
resolver, planner, command drivers and workflow replay live in their own
submodules and are imported from there, e.g.::

    from fryflow.core.engine import run_quant
    from fryflow.core.workflow import run_workflow
"""

from .errors import (
    ConfigurationError,
    ExecutionError,
    FryflowError,
    GeometryError,
    PersistenceError,
    PreconditionError,
)
from .types import (
    CellFilterMethod,
    Chemistry,
    IndexType,
    Orientation,
    ReferenceType,
    UnfilteredPermitList,
)

__all__ = [
    # Errors
    "FryflowError",
    "ConfigurationError",
    "GeometryError",
    "PreconditionError",
    "ExecutionError",
    "PersistenceError",
    # Types
    "CellFilterMethod",
    "Chemistry",
    "IndexType",
    "Orientation",
    "ReferenceType",
    "UnfilteredPermitList",
]
