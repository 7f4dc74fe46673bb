"""Legion Condor clan statistics: aggregation, leaderboards and inactivity reports."""

__version__ = "0.3.0"
