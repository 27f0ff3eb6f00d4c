"""
sqlsim HTTP API
"""
