"""Distance-vector routing convergence simulator."""

__version__ = "0.1.0"
