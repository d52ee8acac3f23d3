"""Configurable mock service for exercising a durable execution host.

Entities, handlers and their step lists are declared in YAML; the kernel
validates them once at load time and interprets them per invocation.
"""
