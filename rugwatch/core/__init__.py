"""Core cross-cutting pieces: error taxonomy and provider call helpers."""
