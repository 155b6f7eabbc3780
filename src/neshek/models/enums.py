from enum import StrEnum


class DataType(StrEnum):
    STR = "str"
    CLOB = "clob"
    BOOL = "bool"
    INT = "int"
    BIGINT = "bigint"
    REAL = "real"
    DEC = "dec"
    BITS = "bits"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    LINK = "link"
    MULTILINK = "multilink"
    OBJ = "obj"
    ARR = "arr"


class RelationalPropKind(StrEnum):
    SCALAR = "scalar"
    LINK = "link"
    MULTILINK = "multilink"


# Kinds that are stored but never traversed and cannot take part in a key.
OPAQUE_TYPES = frozenset({DataType.OBJ, DataType.ARR})
