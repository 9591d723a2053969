"""
Shared Layer - Cross-Cutting Concerns
Configuration, error contract, logging and the Redis connection
"""
