"""
Utils package
"""

from .normalization import normalize_category_name, pick_palette_color

__all__ = [
    "normalize_category_name",
    "pick_palette_color",
]
