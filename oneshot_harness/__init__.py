"""Single-shot inference harness.

Loads one model, validates and populates its inputs from text or synthetic
data, runs one forward pass and reports per-phase timings.
"""

__version__ = "0.1.0"
