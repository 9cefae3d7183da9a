"""
HTTP and WebSocket surface for Rugwatch (FastAPI).
"""
