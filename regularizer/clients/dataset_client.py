"""
Aggregated make/model queries over the ingested registration dataset.
"""
from typing import List, Optional

import pandas as pd
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from regularizer.clients.catalog_client import read_only_engine
from regularizer.models import IdentifierPair, YearRange

PAIRS_SQL = text(
    """
    SELECT
        make_enum.name AS make,
        model_enum.name AS model,
        GROUP_CONCAT(DISTINCT classification_enum.code) AS categories,
        MIN(vehicles.model_year) AS min_model_year,
        MAX(vehicles.model_year) AS max_model_year,
        MIN(vehicles.year) AS min_year,
        MAX(vehicles.year) AS max_year
    FROM vehicles
    JOIN make_enum ON vehicles.make_id = make_enum.id
    JOIN model_enum ON vehicles.model_id = model_enum.id
    LEFT JOIN classification_enum ON vehicles.classification_id = classification_enum.id
    WHERE vehicles.year BETWEEN :start_year AND :end_year
    GROUP BY make_enum.name, model_enum.name
    """
)


class DatasetUnavailableError(RuntimeError):
    """The registration dataset could not be opened or queried."""


def _year_range(low, high) -> Optional[YearRange]:
    if pd.isna(low) or pd.isna(high):
        return None
    return YearRange(int(low), int(high))


def _categories(value) -> frozenset:
    if value is None or pd.isna(value):
        return frozenset()
    return frozenset(code.strip() for code in str(value).split(",") if code.strip())


def rows_to_pairs(df: pd.DataFrame) -> List[IdentifierPair]:
    """Convert aggregated query rows to IdentifierPairs, skipping rows with a missing make or model."""
    pairs = []
    for _, row in df.iterrows():
        if pd.isna(row["make"]) or pd.isna(row["model"]):
            continue
        pairs.append(
            IdentifierPair(
                primary=str(row["make"]).strip(),
                secondary=str(row["model"]).strip(),
                model_year_range=_year_range(row["min_model_year"], row["max_model_year"]),
                period_range=_year_range(row["min_year"], row["max_year"]),
                categories=_categories(row["categories"]),
            )
        )
    return pairs


class DatasetClient:
    """Read-only access to the registration dataset."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def load_frame(self, start_year: int, end_year: int) -> pd.DataFrame:
        engine = read_only_engine(self.db_path)
        try:
            with engine.connect() as connection:
                return pd.read_sql(PAIRS_SQL, connection, params={"start_year": start_year, "end_year": end_year})
        except SQLAlchemyError as e:
            raise DatasetUnavailableError(f"Cannot query dataset at {self.db_path}: {e}") from e
        finally:
            engine.dispose()

    def load_pairs(self, start_year: int, end_year: int) -> List[IdentifierPair]:
        """
        Distinct make/model pairs registered between `start_year` and `end_year` (inclusive).

        Returns:
            List[IdentifierPair]: One pair per make/model with its category codes,
                                  model-year range and registration-year range.
        """
        df = self.load_frame(start_year, end_year)
        pairs = rows_to_pairs(df)
        logger.info(f"Loaded {len(pairs)} make/model pairs for {start_year}-{end_year}")
        return pairs
