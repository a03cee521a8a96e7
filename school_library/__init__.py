"""School Library - Core Application Package

This package contains the core application modules including:
- HTTP API (api.py)
- Command line (cli.py)
- Inventory ledger: borrow, return, overdue (ledger.py)
- Attendance toggle: check-in/check-out (attendance.py)
- Catalogue, people and e-books (catalog.py, directory.py, ebooks.py)
- Authentication (auth.py)
- Data models (book.py, person.py, records.py)
- Database layer (database.py)
"""
