"""
Verify package structure and module imports.
Ensures that the core application modules can be imported without syntax errors,
confirming correct package setup and path configuration.
"""

def test_client_imports():
    """Assert that the broker-facing modules can be imported without syntax errors."""
    try:
        import mqtt_tool.client.auth
        import mqtt_tool.client.reconnect
        import mqtt_tool.client.session
        import mqtt_tool.client.models
        success = True
    except ImportError as e:
        success = False
        print(f"Client Import Failed: {e}")

    assert success is True


def test_cli_imports():
    """Assert that the command line modules can be imported without syntax errors."""
    try:
        import mqtt_tool.cli.main
        import mqtt_tool.cli.commands
        import mqtt_tool.retained.codec
        import mqtt_tool.retained.purge
        import mqtt_tool.retained.lines
        success = True
    except ImportError as e:
        success = False
        print(f"CLI Import Failed: {e}")

    assert success is True
