"""Host introspection adapters."""
