"""Core models, configuration, caching and profiling."""
