"""
ort-builder — ONNX Runtime source build orchestrator.

Purpose
- Fetch a pinned ONNX Runtime release, repair its dependency manifest, drive its
  native build, and package the static libraries into ``<output>/lib``.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
