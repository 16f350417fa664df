"""StoryRelay core: session domain, errors, concurrency primitives"""
__version__ = "0.1.0"
