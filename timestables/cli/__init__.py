"""
CLI Module - Typer application and rich renderers.

Components:
- main: Commands (start, resume, history, config, compete)
- visuals: Panels and tables for rounds, comparisons and results
"""
