from __future__ import annotations

from .formatting import format_categories, format_frequencies, format_tuple

__all__ = ["format_categories", "format_frequencies", "format_tuple"]
