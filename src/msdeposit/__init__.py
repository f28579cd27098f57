"""Build normalized manuscript deposit submissions and stream them into packages."""

__version__ = "0.1.0"
