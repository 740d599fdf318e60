"""Sprout: a parenting journal with an LLM entry-processing pipeline."""

__version__ = "0.1.0"
