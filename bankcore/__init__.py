"""
Banking Core

Account lifecycle, funding, transaction history and session authentication,
with field-level encryption of sensitive personal data at rest.
"""

__version__ = "1.0.0"
