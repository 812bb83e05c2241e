from .base import InputHarness, input_slots
from .synthetic import SyntheticHarness
from .text import TextHarness

__all__ = [
    "InputHarness",
    "SyntheticHarness",
    "TextHarness",
    "input_slots",
]
