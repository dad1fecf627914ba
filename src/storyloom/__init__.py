"""storyloom: editor and runtime for branching, stateful scene graphs."""

__version__ = "0.3.0"
