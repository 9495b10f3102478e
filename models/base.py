"""
Defines the declarative base shared by every ORM model.

Tables keep the column names of the persisted schema (``urlId``, ``chatId``,
``contentType`` and so on) while mapped attributes use snake_case. Each such
column passes ``key=`` so Core statements and ``excluded`` collections are
addressed by the Python name.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
