"""
Layer Errors
"""


class LayerError(Exception):
    """Base class for every error raised by a layer."""


class InvalidInput(LayerError, ValueError):
    """Input or parameter buffer does not match the layer's expected length."""


class InvalidShape(LayerError, ValueError):
    """Window, stride or padding would give a unit an empty output."""


class DomainError(LayerError, ArithmeticError):
    """A learned parameter puts the computation outside its domain."""
