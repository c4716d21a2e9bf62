"""
Read-only access to the authoritative vehicle catalog (CVS SQLite export).

Every session opens its own connection; connections are never pooled or
shared between tasks.
"""
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import NullPool

from regularizer.config import SEPARATOR

LOOKUP_SQL = text(
    """
    SELECT saaq_make, saaq_model, vehicle_type, myr
    FROM cvs_data
    WHERE saaq_make = :make AND saaq_model = :model
    """
)

_LETTERS_THEN_DIGITS = re.compile(r"^([A-Za-z]+)(\d.*)$")


@dataclass(frozen=True)
class CatalogRecord:
    """One catalog row for a make/model."""
    make: str
    model: str
    category: Optional[str]  # vehicle type code
    model_year: Optional[int] = None


def read_only_engine(db_path: str) -> Engine:
    """SQLite engine that never creates or writes the database file."""
    uri_path = Path(db_path).expanduser().resolve().as_posix()
    return create_engine(f"sqlite:///file:{uri_path}?mode=ro&uri=true", poolclass=NullPool)


def secondary_variants(secondary: str, separator: str = SEPARATOR) -> List[str]:
    """
    Spellings of a model code to try before concluding it is not in the catalog.

    "CX-3" -> ["CX-3", "CX3"]; "CX3" -> ["CX3", "CX-3"]; "CIVIC" -> ["CIVIC"].
    """
    variants = [secondary]
    if separator in secondary:
        variants.append(secondary.replace(separator, ""))
    else:
        match = _LETTERS_THEN_DIGITS.match(secondary)
        if match:
            variants.append(f"{match.group(1)}{separator}{match.group(2)}")
    return variants


class CatalogSession:
    """Lookups over a single, task-owned connection."""

    def __init__(self, connection: Connection, separator: str = SEPARATOR):
        self._connection = connection
        self._separator = separator

    def lookup(self, primary: str, secondary: str) -> List[CatalogRecord]:
        """
        Find catalog records for a make/model, trying separator variants of the model.

        Args:
            primary (str): Make.
            secondary (str): Model code.

        Returns:
            List[CatalogRecord]: Matching records; empty when the pair is unknown.
        """
        records: List[CatalogRecord] = []
        seen = set()
        for variant in secondary_variants(secondary, self._separator):
            rows = self._connection.execute(LOOKUP_SQL, {"make": primary.upper(), "model": variant})
            for row in rows:
                myr = row[3]
                record = CatalogRecord(
                    make=row[0],
                    model=row[1],
                    category=row[2],
                    model_year=int(myr) if myr is not None else None,
                )
                if record not in seen:
                    seen.add(record)
                    records.append(record)
        return records


class ReferenceCatalog:
    """Factory for isolated catalog sessions."""

    def __init__(self, db_path: str, separator: str = SEPARATOR):
        self.db_path = db_path
        self.separator = separator

    @contextmanager
    def session(self) -> Iterator[CatalogSession]:
        engine = read_only_engine(self.db_path)
        try:
            with engine.connect() as connection:
                yield CatalogSession(connection, self.separator)
        finally:
            engine.dispose()
