"""
The `mqtt_tool` command line: configuration, commands and process lifecycle.
"""
