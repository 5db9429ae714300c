"""Azure API Management operator for Kubernetes."""

from apim_operator.__version__ import __version__

__all__ = ["__version__"]
