from sqlvec.adapters.base import AdapterBase
from sqlvec.adapters.dbapi import DBAPIAdapter

__all__ = ("AdapterBase", "DBAPIAdapter")
