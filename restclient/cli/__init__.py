"""Command line interface for the REST client."""
