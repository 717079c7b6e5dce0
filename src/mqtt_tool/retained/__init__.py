"""
Retained message state: the backup line format and the throttled purge.
"""
