"""mediaforge: one request shape, many image/video generation backends."""

__version__ = "0.1.0"
