"""Scenario catalogs."""

from .vertical_bar_chart import CATALOG, get_scenario, init_bar_chart_steps, vertical_bar_config

__all__ = ['CATALOG', 'get_scenario', 'init_bar_chart_steps', 'vertical_bar_config']
