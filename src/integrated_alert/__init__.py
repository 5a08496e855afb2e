"""Integrated deforestation alerts from Hansen GFC loss and RADD radar alerts.

The pipeline combines both datasets over one area of interest into binary loss
masks, per-dataset hectare figures and a merged "integrated alert" layer.
"""

__version__ = "0.1.0"
