"""jumpcut: remove silent stretches from uploaded audio and video."""

__version__ = "0.1.0"
