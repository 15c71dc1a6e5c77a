"""Multimodal chat backend with tool approval."""

__version__ = "0.1.0"
