"""Options Flow Tracker - options trade flow alerts and leaderboards."""

__version__ = "0.1.0"
