"""Read Rocky Linux, SUSE CVRF, Ubuntu and Wolfi security feeds into an in-memory advisory store."""

__version__ = "0.1.0"