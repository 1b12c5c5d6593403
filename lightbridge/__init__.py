"""HTTP control surface and schedule follower for a Hue lighting bridge."""

__version__ = "1.0.0"
