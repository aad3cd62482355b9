"""fryflow: orchestration for alevin-fry single-cell quantification workflows.

This package provides tools for:
- Building expanded (spliced+intronic / spliced+unspliced) references and
  salmon or piscem indices
- Mapping reads, generating permit lists, collating and quantifying with
  alevin-fry
- Recording reproducible provenance for every external invocation
- Replaying previously recorded commands from workflow description files

The external programs themselves (salmon, piscem, alevin-fry, pyroe) are
located through a tool registry persisted in the ALEVIN_FRY_HOME directory.

Example usage:
    >>> from fryflow.config import AppHome
    >>> from fryflow.core.engine import run_quant
    >>>
    >>> home = AppHome.from_env()
    >>> run_quant(home, options)
"""

__version__ = "0.1.0"
