"""HTTP API blueprints: control panel routes, health checks and error handlers."""
