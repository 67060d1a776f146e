"""Unit tests for the statement import endpoints."""
from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ledger_import.api.dependencies import get_import_service
from ledger_import.api.endpoints.imports import router
from ledger_import.schemas.imports import (
    DocumentClassificationRead,
    DraftTransactionRead,
    ImportCommitReport,
    ImportPreviewResponse,
)
from ledger_import.services.exceptions import (
    CommitFailedError,
    ConflictError,
    UnreadableDocumentError,
    UnsupportedSourceTypeError,
    ValidationError,
)

USER_ID = "0b7f6a3e-5b8e-4f6c-9d6a-2f7c1e9b8a10"
IMPORT_URL = f"/api/users/{USER_ID}/imports"
PARSE_URL = f"{IMPORT_URL}/parse"
CSV_BODY = "Data;Descricao;Valor\n05/03/2024;Padaria;-10,00\n".encode("utf-8")
CSV_HEADERS = {"Content-Type": "text/csv"}


def _preview() -> ImportPreviewResponse:
    return ImportPreviewResponse(
        source_type="csv",
        classification=DocumentClassificationRead(
            document_type="bank_statement", issuer_profile="csv", score=1.0, confidence="high"
        ),
        summary={"total_rows": 1, "valid_rows": 1, "ignored_rows": 0, "error_rows": 0, "reasons": {"ok": 1}},
        transactions=[
            DraftTransactionRead(
                date=datetime(2024, 3, 5, tzinfo=timezone.utc),
                description="Padaria",
                normalized_description="PADARIA",
                amount=-10.0,
                type="expense",
            )
        ],
        diagnostics=[],
        metadata={"delimiter": ";"},
    )


def _report() -> ImportCommitReport:
    return ImportCommitReport(batch_id="batch-1", total_rows=1, valid_rows=1, imported=1, records_created=1)


@pytest.fixture()
def api_app() -> Generator[FastAPI, None, None]:
    app = FastAPI()
    app.include_router(router, prefix="/api")
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def api_client(api_app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(api_app) as client:
        yield client


class RecordingService:
    def __init__(self) -> None:
        self.preview_calls: list[tuple[bytes, str, str | None]] = []
        self.import_calls: list[dict[str, object]] = []

    def preview(self, content: bytes, source_type: str, file_name: str | None = None) -> ImportPreviewResponse:
        self.preview_calls.append((content, source_type, file_name))
        return _preview()

    def import_document(self, content: bytes, source_type: str, idempotency_key: str | None, **options) -> ImportCommitReport:
        self.import_calls.append(
            {"content": content, "source_type": source_type, "idempotency_key": idempotency_key, **options}
        )
        return _report()


class RaisingService:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def preview(self, *_args, **_kwargs):
        raise self.exc

    def import_document(self, *_args, **_kwargs):
        raise self.exc


def test_parse_returns_preview(api_app: FastAPI, api_client: TestClient) -> None:
    service = RecordingService()
    api_app.dependency_overrides[get_import_service] = lambda: service

    response = api_client.post(
        PARSE_URL,
        params={"source_type": "csv", "file_name": "extrato.csv"},
        content=CSV_BODY,
        headers=CSV_HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["source_type"] == "csv"
    assert body["transactions"][0]["date"] == "2024-03-05"
    assert body["classification"]["confidence"] == "high"
    assert service.preview_calls == [(CSV_BODY, "csv", "extrato.csv")]


def test_parse_requires_source_type(api_app: FastAPI, api_client: TestClient) -> None:
    api_app.dependency_overrides[get_import_service] = RecordingService

    response = api_client.post(PARSE_URL, content=CSV_BODY, headers=CSV_HEADERS)

    assert response.status_code == 422


def test_commit_forwards_options_and_idempotency_key(api_app: FastAPI, api_client: TestClient) -> None:
    service = RecordingService()
    api_app.dependency_overrides[get_import_service] = lambda: service

    response = api_client.post(
        IMPORT_URL,
        params={
            "source_type": "ofx",
            "file_name": "extrato.ofx",
            "default_account_id": "acc-1",
            "card_payment_target_account_id": "acc-2",
            "apply_rules": "false",
        },
        content=b"<OFX></OFX>",
        headers={"Content-Type": "application/octet-stream", "Idempotency-Key": "upload-42"},
    )

    assert response.status_code == 200
    assert response.json()["batch_id"] == "batch-1"
    assert service.import_calls == [
        {
            "content": b"<OFX></OFX>",
            "source_type": "ofx",
            "idempotency_key": "upload-42",
            "file_name": "extrato.ofx",
            "default_account_id": "acc-1",
            "apply_rules": False,
            "card_payment_target_account_id": "acc-2",
        }
    ]


def test_commit_without_key_passes_none(api_app: FastAPI, api_client: TestClient) -> None:
    service = RecordingService()
    api_app.dependency_overrides[get_import_service] = lambda: service

    api_client.post(IMPORT_URL, params={"source_type": "csv"}, content=CSV_BODY, headers=CSV_HEADERS)

    assert service.import_calls[0]["idempotency_key"] is None
    assert service.import_calls[0]["apply_rules"] is True


@pytest.mark.parametrize(
    ("exc", "expected_status", "expected_detail"),
    [
        (ValidationError("Idempotency-Key header is required for imports"), 400, "Idempotency-Key header is required for imports"),
        (UnsupportedSourceTypeError("Unsupported source type 'xls'"), 400, "Unsupported source type 'xls'"),
        (ConflictError("Idempotency key re-used with different payload"), 409, "Idempotency key re-used with different payload"),
        (
            UnreadableDocumentError("No transactions", code="no_transactions_found"),
            422,
            {"message": "No transactions", "code": "no_transactions_found"},
        ),
        (CommitFailedError("database down"), 500, "Internal service error"),
    ],
)
def test_commit_maps_service_errors(
    api_app: FastAPI, api_client: TestClient, exc: Exception, expected_status: int, expected_detail
) -> None:
    api_app.dependency_overrides[get_import_service] = lambda: RaisingService(exc)

    response = api_client.post(IMPORT_URL, params={"source_type": "csv"}, content=CSV_BODY, headers=CSV_HEADERS)

    assert response.status_code == expected_status
    assert response.json() == {"detail": expected_detail}


def test_parse_maps_unreadable_document(api_app: FastAPI, api_client: TestClient) -> None:
    api_app.dependency_overrides[get_import_service] = lambda: RaisingService(
        UnreadableDocumentError("File does not look like an OFX statement", code="not_ofx")
    )

    response = api_client.post(PARSE_URL, params={"source_type": "ofx"}, content=b"nope", headers=CSV_HEADERS)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "not_ofx"
