"""
Integrations with external services (identity directory).
"""
