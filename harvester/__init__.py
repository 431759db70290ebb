"""
Campaign harvester.

Pulls newly listed campaigns from a discovery page, enriches each unseen
listing with the creator's biography and appends it to a sheet store.
"""

__version__ = "1.0.0"
