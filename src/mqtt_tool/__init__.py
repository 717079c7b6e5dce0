"""
mqtt_tool

A small command-line client for MQTT brokers: subscribe and print,
clear or purge retained messages, and back up or restore the retained
state of a broker as newline-delimited JSON.
"""
__version__ = "0.1.0"
