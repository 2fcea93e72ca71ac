"""
Watcher package: cron-scheduled polling with change detection.

This package contains:
- Diff engine for newly observed items
- Cron timing with dithered delays
- Watch loop with cancellation
"""

__version__ = "1.0.0"
