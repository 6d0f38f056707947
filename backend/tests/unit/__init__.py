"""
Unit tests package.

Services tested in isolation with mocked repositories and collaborators.
"""
