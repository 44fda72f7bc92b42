"""Core domain package for castwatch.

Core contains change detection, marker commits and feed diffing without any
network, storage or chat-specific code, keeping the business logic portable.
"""
