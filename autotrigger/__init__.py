"""autotrigger — recurring model trigger scheduler."""

__version__ = "0.1.0"
