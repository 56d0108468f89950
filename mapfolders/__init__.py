"""mapfolders - organise placed map markers into ordered folders."""

__version__ = "1.0.0"
