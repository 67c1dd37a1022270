"""Command line interface for tritoncloud."""
