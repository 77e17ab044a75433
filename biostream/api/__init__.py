"""
HTTP and WebSocket interface.
"""
