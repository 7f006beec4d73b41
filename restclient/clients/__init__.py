"""
Client implementations for the REST client.

This package contains the request handler interface, the default HTTP/1.1
handler (blocking and asyncio) and the RestClient executor built on them.
"""
