"""
Broker-facing components: authentication resolution, reconnect backoff
and the live session every command runs through.
"""
