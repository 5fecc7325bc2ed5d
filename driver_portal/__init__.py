"""Driver punch clock and return form portal: sync layer and print dispatch."""

__version__ = "1.0.0"
