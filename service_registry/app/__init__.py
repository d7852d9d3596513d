"""
Registry Service package for the Device Registry.

This package authenticates users and manages the devices and telemetry
topics they own:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.commands: Command-name dispatch to the service operations.
- app.users: Credential checks, password hashing, token authority client.
- app.devices: Device registry, topic set manager, ownership guard.
- app.persistence: Storage interface with in-memory and PostgreSQL backends.

Design notes:
- Module import must not perform IO; storage connects in the startup hook.
- Use the shared/ utilities for logging, metrics, config and errors.
- Permission is always "caller owns the device"; there are no roles.
"""
