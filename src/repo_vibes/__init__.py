"""repo-vibes: GitHub repository activity analysis."""

__version__ = "0.1.0"
