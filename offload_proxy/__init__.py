"""Offload proxy: reverse proxy that lets a backend offload slow requests."""
