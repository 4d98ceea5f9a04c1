"""Badge identification service for MyBadgeLife."""

__version__ = "0.1.0"
