"""Services for dynamiccrud."""
