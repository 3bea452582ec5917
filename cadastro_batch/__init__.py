"""
cadastro-batch: chunked, transactional load of person records into PostgreSQL.
"""

__version__ = "0.1.0"
