"""Step-by-step simulations of AESA, LAESA and M-Tree similarity search."""

__version__ = "0.1.0"
