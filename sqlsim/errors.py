"""
Custom exception classes for sqlsim
"""

class SQLSimError(Exception):
    """Base exception for sqlsim"""
    pass

class ParseError(SQLSimError):
    """Statement or expression does not match its grammar"""
    pass

class UnsupportedFeatureError(SQLSimError):
    """Recognized SQL that the engine deliberately does not implement"""
    pass

class TableNotFoundError(SQLSimError):
    """Table or view does not exist"""
    pass

class SchemaError(SQLSimError):
    """Schema validation error"""
    pass

class ConstraintError(SQLSimError):
    """Primary key, unique or foreign key violation"""
    pass

class ReferentialActionError(SQLSimError):
    """Write blocked by a foreign key action (RESTRICT) or reference"""
    pass
