from __future__ import annotations

from enum import StrEnum


class SegmentAttribute(StrEnum):
    SQL = "sql"
    BACKTRACE = "backtrace"
    KEY = "key"
    CONNECTION_CONFIG = "connection_config"
    TRANSACTION_GUID = "transaction_guid"
    CUSTOM = "custom"  # free-form parameters, stored as a nested mapping


class RecordSql(StrEnum):
    OFF = "off"
    RAW = "raw"
    OBFUSCATED = "obfuscated"


ROOT_SEGMENT_NAME = "ROOT"
UNNAMED_SEGMENT = "<unknown>"
