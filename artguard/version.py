"""Version information for artguard."""

__version__ = "0.3.0"
