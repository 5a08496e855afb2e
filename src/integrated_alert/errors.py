from __future__ import annotations


class AssetNotFoundError(RuntimeError):
    """An AOI, Hansen or RADD asset could not be resolved."""


class EmptyCollectionError(RuntimeError):
    """No collection image survived the bounds/date filters."""


class ReductionTooLargeError(RuntimeError):
    """A region reduction would touch more pixels than ``max_pixels``."""
