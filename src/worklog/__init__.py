"""worklog - per-directory task stores with scope hierarchy and cross-store merge."""

__version__ = "0.4.0"
