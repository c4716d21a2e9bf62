"""
Shared fixtures: pair builders, mocked classifier transport and small SQLite
catalog/dataset files.
"""
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine, text

from regularizer.models import IdentifierPair, YearRange


def make_pair(make, model, years=None, model_years=None, categories=()):
    return IdentifierPair(
        primary=make,
        secondary=model,
        period_range=YearRange(*years) if years else None,
        model_year_range=YearRange(*model_years) if model_years else None,
        categories=frozenset(categories),
    )


def chat_response(content):
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = content
    return resp


def mock_openai_client(answer: Callable[[str], str]):
    """
    Client double whose reply is chosen from the prompt.

    `answer` receives the user prompt and returns the model text.
    """
    client = MagicMock()

    def reply(**kwargs):
        prompt = kwargs["messages"][-1]["content"]
        return chat_response(answer(prompt))

    client.chat_completions_create = AsyncMock(side_effect=reply)
    return client


def answers_by_record(answers: Dict[str, str], default: str = "uncertain | no | 0.5 | unsure"):
    """Route replies by the "Record A: MAKE / MODEL" line of the prompt."""
    def answer(prompt: str) -> str:
        for record, text_ in answers.items():
            if f"Record A: {record}" in prompt:
                return text_
        return default
    return answer


class UnavailableCatalog:
    """Catalog whose every session fails to open."""

    def __init__(self):
        self.attempts = 0

    @contextmanager
    def session(self):
        self.attempts += 1
        raise ConnectionError("catalog unreachable")
        yield  # pragma: no cover


def build_catalog_db(path, rows: Iterable[Tuple[str, str, str, int]]):
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE cvs_data (make TEXT, model TEXT, saaq_make TEXT, saaq_model TEXT, vehicle_type TEXT, myr INTEGER)"
        ))
        for make, model, vehicle_type, myr in rows:
            conn.execute(
                text("INSERT INTO cvs_data VALUES (:make, :model, :make, :model, :vt, :myr)"),
                {"make": make, "model": model, "vt": vehicle_type, "myr": myr},
            )
    engine.dispose()
    return str(path)


def build_dataset_db(path, vehicles: Iterable[Tuple[int, str, str, str, int]]):
    """vehicles: (registration year, make, model, classification code, model year)."""
    vehicles = list(vehicles)
    makes = sorted({v[1] for v in vehicles if v[1] is not None})
    models = sorted({v[2] for v in vehicles if v[2] is not None})
    codes = sorted({v[3] for v in vehicles if v[3] is not None})
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE make_enum (id INTEGER PRIMARY KEY, name TEXT)"))
        conn.execute(text("CREATE TABLE model_enum (id INTEGER PRIMARY KEY, name TEXT)"))
        conn.execute(text("CREATE TABLE classification_enum (id INTEGER PRIMARY KEY, code TEXT)"))
        conn.execute(text(
            "CREATE TABLE vehicles (id INTEGER PRIMARY KEY, year INTEGER, make_id INTEGER, "
            "model_id INTEGER, classification_id INTEGER, model_year INTEGER)"
        ))
        for i, name in enumerate(makes, 1):
            conn.execute(text("INSERT INTO make_enum VALUES (:id, :name)"), {"id": i, "name": name})
        for i, name in enumerate(models, 1):
            conn.execute(text("INSERT INTO model_enum VALUES (:id, :name)"), {"id": i, "name": name})
        for i, code in enumerate(codes, 1):
            conn.execute(text("INSERT INTO classification_enum VALUES (:id, :code)"), {"id": i, "code": code})
        for year, make, model, code, model_year in vehicles:
            conn.execute(
                text("INSERT INTO vehicles (year, make_id, model_id, classification_id, model_year) "
                     "VALUES (:year, :make_id, :model_id, :class_id, :model_year)"),
                {
                    "year": year,
                    "make_id": makes.index(make) + 1 if make is not None else None,
                    "model_id": models.index(model) + 1 if model is not None else None,
                    "class_id": codes.index(code) + 1 if code is not None else None,
                    "model_year": model_year,
                },
            )
    engine.dispose()
    return str(path)


@pytest.fixture
def catalog_db(tmp_path):
    return build_catalog_db(
        tmp_path / "catalog.sqlite",
        [
            ("MAZDA", "CX-3", "PAU", 2020),
            ("HONDA", "CR-V", "PAU", 2021),
            ("HONDA", "CBR", "PMC", 2021),
            ("HONDA", "CIVIC", "PAU", 2022),
            ("TOYOTA", "RAV4", "PAU", 2022),
        ],
    )
