"""Orchestration helpers wiring the accumulator to its collaborators."""
