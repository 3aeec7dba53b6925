"""
REST interface for the ScrapScript translators.
"""
