"""
Interface layer package.

Typer command line and Rich output formatting.
"""
