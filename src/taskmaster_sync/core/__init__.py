"""
Core - Domain model, ports and exceptions. No I/O lives here.
"""
