"""Nomad event-stream consumption: subscription source and receive loop."""
