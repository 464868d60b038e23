"""Request pipeline, CSRF tokens, events, logging and telemetry."""
