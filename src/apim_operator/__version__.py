"""Version information for apim_operator."""

__version__ = "0.4.0"
