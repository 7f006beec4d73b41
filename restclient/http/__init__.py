"""HTTP message types: parameters, request descriptors, responses and multipart bodies."""

__all__ = ['multipart', 'parameters', 'request', 'response']
