from .config import DEFAULTS, TOOLTIPS, load_params, sanitize_params

__all__ = ["DEFAULTS", "TOOLTIPS", "load_params", "sanitize_params"]
