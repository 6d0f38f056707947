"""
Domain layer - business entities and repository contracts.
"""
