from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import openpyxl
import pytest
import xlwt
from flask import Flask

from factory_entry import create_app
from factory_entry.config import Settings


class FakeRemote:
    """Stands in for the external webhook and records what it receives."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body = b'{"received": true}'
        self.error: Optional[Exception] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.body)


def build_xls(sheets: Dict[str, List[List[Any]]]) -> bytes:
    workbook = xlwt.Workbook()
    for name, rows in sheets.items():
        sheet = workbook.add_sheet(name)
        for row_index, row in enumerate(rows):
            for col_index, value in enumerate(row):
                if value is not None:
                    sheet.write(row_index, col_index, value)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_xlsx(sheets: Dict[str, List[List[Any]]]) -> bytes:
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        sheet = workbook.create_sheet(name)
        for row in rows:
            sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def settings(data_dir: Path) -> Settings:
    return Settings(
        data_dir=data_dir,
        environment="test",
        secret_key="test-secret",
        users=["Ahmed", "Bilal"],
        default_timezone="Asia/Karachi",
    )


@pytest.fixture()
def app(settings: Settings, remote: FakeRemote) -> Flask:
    app = create_app(settings, transport=httpx.MockTransport(remote.handler))
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(app: Flask):
    return app.test_client()


@pytest.fixture()
def make_xls():
    return build_xls


@pytest.fixture()
def make_xlsx():
    return build_xlsx
