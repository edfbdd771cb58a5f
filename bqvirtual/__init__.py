"""
bqvirtual - BigQuery-backed virtual table adapter

Translates host Create / Retrieve / RetrieveMultiple / Update / Delete
operations into authenticated BigQuery REST calls, and BigQuery rows back
into host records.
"""

__version__ = "0.1.0"


__all__ = [
    "Configuration",
    "load_config",
    "FieldMapping",
    "FieldMappingRegistry",
    "FieldType",
    "HostRecord",
    "RemoteQueryExecutor",
    "VirtualTableAdapter",
]

from .config import Configuration, load_config
from .mapping import FieldMapping, FieldMappingRegistry, FieldType
from .records import HostRecord
from .executor import RemoteQueryExecutor
from .adapters import VirtualTableAdapter
