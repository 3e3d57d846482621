"""Core domain package for the history sanitizer.

Core contains pattern compilation, matching and the deletion pipeline
without any browser or storage-specific code, keeping the logic portable.
"""
