"""uzgtd - validation, correction and payment engine for Uzbekistan GTD declarations."""

from .version import __version__

__all__ = ["__version__"]
