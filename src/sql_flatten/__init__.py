"""
SQL Script Flatten Service - safe change preview for SQL scripts

Rewrites an arbitrary SQL script into a transactional "flatten" script:
- Snapshots every referenced table into a session temp table
- Runs the original script
- Diffs each table against its snapshot and returns the changed rows
- Rolls everything back, so nothing the script does is persisted
"""

__version__ = "0.1.0"
