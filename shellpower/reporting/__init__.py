from .iv_plot import NOON_SUN_DIRECTION, format_power_breakdown, render_iv_chart

__all__ = ["render_iv_chart", "format_power_breakdown", "NOON_SUN_DIRECTION"]
