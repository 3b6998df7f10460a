"""Shared JSON document column type configuration."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

DOCUMENT_COLUMN_TYPE = JSON().with_variant(JSONB(), "postgresql")
