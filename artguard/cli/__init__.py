"""Command line interface for artguard."""
