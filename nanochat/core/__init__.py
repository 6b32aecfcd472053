"""
Core package: configuration, exceptions, logging, observability, domain
records and store contracts shared by every layer.
"""
