"""
Utilities package for BodyScan.

This package contains utility functions for:
- Image preprocessing (device side only)
- Geometric calculations
- Formatting sessions and gate decisions for clients

Submodules are imported explicitly so the gateway never loads the image stack.
"""

__version__ = "1.0.0"

__all__ = ["geometry", "preprocess", "postprocess"]
