"""Blue/green deployment manager for Amazon RDS clusters."""

__version__ = "0.1.0"
