"""Local Library - catalog web application

This package contains:
- Web routes (api.py)
- Request handlers for the catalog pages (controllers.py)
- Book form validation (validators.py)
- Data models (models.py)
- Database layer (database.py, store.py)
- CLI interface (cli.py)
"""
