"""Shared fixtures: in-memory database, scripted AI client, recorded sleeps."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from licitaradar.db.models import Base
from licitaradar.settings import Settings

EMBEDDING_DIM = 768


class FakeLLM:
    """Scripted stand-in for the Gemini client.

    ``responses`` items are returned in order: a string is the answer, an
    exception is raised, a callable receives the prompt and returns text.
    """

    def __init__(self, responses=None, dimension=EMBEDDING_DIM):
        self.responses = list(responses or [])
        self.calls = []
        self.embed_calls = []
        self.dimension = dimension

    async def generate(self, contents, *, model=None, temperature=None,
                       max_output_tokens=None, json_output=False):
        self.calls.append(contents)
        if not self.responses:
            raise AssertionError("unexpected generate call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(contents)
        return response

    async def embed(self, text, task_type):
        self.embed_calls.append((text, task_type))
        return [0.1] * self.dimension


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite://",
        gemini_api_key="test",
        cron_secret="s3cret",
        pncp_base_url="https://pncp.test/api/consulta",
        pncp_files_base_url="https://pncp.test/api/pncp",
        pncp_modality_codes=[6],
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_record(control_number, description="serviços de limpeza hospitalar", **overrides):
    """Column values of a parsed record."""
    values = {
        "control_number": control_number,
        "entity_cnpj": "12345678000199",
        "entity_name": "Prefeitura Municipal de Teste",
        "municipality": "Campinas",
        "state": "SP",
        "purchase_year": 2024,
        "purchase_sequence": 7,
        "modality": "Pregão - Eletrônico",
        "status": "Divulgada no PNCP",
        "description": description,
        "estimated_value": 150000.0,
        "published_at": datetime(2024, 5, 2, 10, 0),
    }
    values.update(overrides)
    return values


def make_raw_item(control_number, description="serviços de limpeza hospitalar", **overrides):
    """Item as returned by the PNCP publication endpoint."""
    item = {
        "numeroControlePNCP": control_number,
        "orgaoEntidade": {"cnpj": "12345678000199", "razaoSocial": "Prefeitura Municipal de Teste"},
        "unidadeOrgao": {"ufSigla": "sp", "municipioNome": "Campinas", "nomeUnidade": "Secretaria de Saúde"},
        "anoCompra": 2024,
        "sequencialCompra": 7,
        "processo": "123/2024",
        "modalidadeNome": "Pregão - Eletrônico",
        "situacaoCompraNome": "Divulgada no PNCP",
        "objetoCompra": description,
        "valorTotalEstimado": 150000.5,
        "dataPublicacaoPncp": "2024-05-02T10:00:00",
        "dataAtualizacao": "2024-05-03T08:30:00",
        "linkSistemaOrigem": "https://compras.test/123",
    }
    item.update(overrides)
    return item


def make_pdf(pages):
    """Minimal PDF with one Helvetica text line per page."""
    count = len(pages)
    kids = " ".join(f"{4 + 2 * i} 0 R" for i in range(count))
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {count} >>".encode("ascii"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for i, text in enumerate(pages):
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {5 + 2 * i} 0 R >>".encode("ascii")
        )
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)
