"""Command-line interface for fryflow.

Example Usage
-------------
    # From command line:
    fryflow --help
    fryflow index --ref-seq transcripts.fa -o idx
    fryflow quant -c 10xv3 --map-dir mapped/ -f 500 -m t2g.tsv -r cr-like -o quant
    fryflow run-workflow -j workflow.json
"""

from .main import cli, main, parse_command_line

__all__ = [
    "cli",
    "main",
    "parse_command_line",
]
