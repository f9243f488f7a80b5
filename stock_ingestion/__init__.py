"""
stock_ingestion -- file-backed implementations of the external collaborators.

The order system and product catalog are owned elsewhere; these adapters let
the CLI and tests feed them from JSON exports.
"""
