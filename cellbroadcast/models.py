"""
SQLAlchemy ORM models for database tables.

This module contains the cell broadcast table definition and the column
name constants shared by the provider, the schema manager and the API.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Boolean, Column, Integer, Text, text
from sqlalchemy.orm import declarative_base

# Base class for SQLAlchemy models
Base = declarative_base()

# Table name of cell broadcast messages
CELL_BROADCASTS_TABLE_NAME = "cell_broadcasts"


# =============================================================================
# Column Names
# =============================================================================

ID = "id"
SUB_ID = "sub_id"
SLOT_INDEX = "slot_index"
GEOGRAPHICAL_SCOPE = "geo_scope"
PLMN = "plmn"
LAC = "lac"
CID = "cid"
SERIAL_NUMBER = "serial_number"
SERVICE_CATEGORY = "service_category"
LANGUAGE_CODE = "language"
MESSAGE_BODY = "body"
MESSAGE_FORMAT = "format"
MESSAGE_PRIORITY = "priority"
ETWS_WARNING_TYPE = "etws_warning_type"
CMAS_MESSAGE_CLASS = "cmas_message_class"
CMAS_CATEGORY = "cmas_category"
CMAS_RESPONSE_TYPE = "cmas_response_type"
CMAS_SEVERITY = "cmas_severity"
CMAS_URGENCY = "cmas_urgency"
CMAS_CERTAINTY = "cmas_certainty"
RECEIVED_TIME = "received_time"
MESSAGE_BROADCASTED = "message_broadcasted"
GEOMETRIES = "geometries"
MAXIMUM_WAIT_TIME = "maximum_wait_time"

# Columns exposed to callers; also the default projection
QUERY_COLUMNS = (
    ID,
    SLOT_INDEX,
    GEOGRAPHICAL_SCOPE,
    PLMN,
    LAC,
    CID,
    SERIAL_NUMBER,
    SERVICE_CATEGORY,
    LANGUAGE_CODE,
    MESSAGE_BODY,
    MESSAGE_FORMAT,
    MESSAGE_PRIORITY,
    ETWS_WARNING_TYPE,
    CMAS_MESSAGE_CLASS,
    CMAS_CATEGORY,
    CMAS_RESPONSE_TYPE,
    CMAS_SEVERITY,
    CMAS_URGENCY,
    CMAS_CERTAINTY,
    RECEIVED_TIME,
    MESSAGE_BROADCASTED,
    GEOMETRIES,
    MAXIMUM_WAIT_TIME,
)

# Every column of the table, including the deprecated sub_id
ALL_COLUMNS = frozenset(QUERY_COLUMNS) | {SUB_ID}

# Columns a writer may set; the identity is always assigned by storage
WRITABLE_COLUMNS = ALL_COLUMNS - {ID}


class CellBroadcast(Base):
    """
    SQLAlchemy model for one received cell broadcast alert.

    Table: cell_broadcasts
    Primary Key: id (AUTOINCREMENT, so identities are never reused)
    """
    __tablename__ = CELL_BROADCASTS_TABLE_NAME
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    sub_id = Column(Integer, nullable=True)
    slot_index = Column(Integer, server_default=text("0"))
    geo_scope = Column(Integer, nullable=True)
    plmn = Column(Text, nullable=True)
    lac = Column(Integer, nullable=True)
    cid = Column(Integer, nullable=True)
    serial_number = Column(Integer, nullable=True)
    service_category = Column(Integer, nullable=True)
    language = Column(Text, nullable=True)
    body = Column(Text, nullable=True)
    format = Column(Integer, nullable=True)
    priority = Column(Integer, nullable=True)
    etws_warning_type = Column(Integer, nullable=True)
    cmas_message_class = Column(Integer, nullable=True)
    cmas_category = Column(Integer, nullable=True)
    cmas_response_type = Column(Integer, nullable=True)
    cmas_severity = Column(Integer, nullable=True)
    cmas_urgency = Column(Integer, nullable=True)
    cmas_certainty = Column(Integer, nullable=True)
    received_time = Column(BigInteger, nullable=True)  # epoch millis
    message_broadcasted = Column(Boolean, server_default=text("0"))
    geometries = Column(Text, nullable=True)
    maximum_wait_time = Column(Integer, nullable=True)  # seconds
