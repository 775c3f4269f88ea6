"""Dash viewer for the live call graph."""

from call_graph_live.ui.app import create_app

__all__ = ["create_app"]
