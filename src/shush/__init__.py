"""shush - silence checks in a Sensu-style monitoring system."""

__version__ = "0.4.0"
