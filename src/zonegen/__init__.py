"""zonegen: build, load and dump asset zones and their pack files."""

__version__ = "0.1.0"
