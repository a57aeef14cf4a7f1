"""Flask web UI for dynamiccrud."""
