"""Pytest configuration and fixtures."""

import asyncio
import json
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from stemcare.app.db.base import Base, get_db, get_session_factory
from stemcare.app.main import app
from stemcare.app.models import Customer, CustomerStatus, HealthAssessment, LaboratoryItem
from stemcare.app.services.llm import AnalysisResult, get_analysis_service
from stemcare.app.services.pdf_generator import get_pdf_generator
from stemcare.app.services.system_settings import SystemSettingsCache, get_system_settings
from stemcare.app.services.task_runner import GenerationTaskRunner, get_task_runner

FAKE_PDF = b"%PDF-1.4\n% fake document\n%%EOF"


class FakeAnalysisService:
    """
    Stand-in for the DeepSeek-backed analysis service.

    Set ``error`` to make calls fail, or ``gate`` (an asyncio.Event) to hold
    calls until the test releases them.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.content = "## 总体评估\n各项指标基本正常，血压略偏高。"
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.is_configured = True

    async def analyze(self, prompt: str, system_prompt: str | None = None) -> AnalysisResult:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return AnalysisResult(content=self.content, model_identifier="deepseek-chat", token_count=321)


class FakeConverter:
    """Stand-in for the document converter that counts conversions."""

    def __init__(self):
        self.calls = 0
        self.available = True
        self.errors: list[Exception] = []

    async def is_available(self) -> bool:
        return self.available

    async def convert(self, markdown_content: str) -> bytes:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return FAKE_PDF


@pytest.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a test database engine.

    A file database (instead of :memory:) lets request sessions and worker
    sessions use separate connections, as they do in production.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session to the test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_analysis() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture
def fake_converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
async def task_runner() -> AsyncGenerator[GenerationTaskRunner, None]:
    """Fresh task runner; any generation still running is drained at teardown."""
    runner = GenerationTaskRunner()
    yield runner
    await runner.drain(timeout=5)


@pytest.fixture
async def settings_cache(session_factory) -> SystemSettingsCache:
    """System settings cache bound to the test database."""
    cache = SystemSettingsCache(staleness_seconds=300)
    await cache.init(session_factory)
    return cache


@pytest.fixture
async def seeded_customer(session_factory) -> dict:
    """
    Create an active customer with three exams and an inactive customer.

    - E1: internal medicine findings plus laboratory results
    - E2: internal medicine findings only
    - E3: laboratory results only
    """
    async with session_factory() as db:
        customer = Customer(name="张三", identity_card="110101198001010011")
        inactive = Customer(name="李四", status=CustomerStatus.INACTIVE.value)
        db.add_all([customer, inactive])
        await db.commit()

        items = json.dumps(
            [
                {"itemName": "血压", "itemResult": "135/85 mmHg"},
                {"itemName": "心率", "itemResult": "72 次/分"},
            ],
            ensure_ascii=False,
        )
        db.add_all([
            HealthAssessment(
                customer_id=customer.id,
                medical_exam_id="E1",
                department="内科",
                assessment_date="2023-06-01",
                doctor="王医生",
                assessment_data=items,
                summary="血压偏高",
            ),
            HealthAssessment(
                customer_id=customer.id,
                medical_exam_id="E2",
                department="内科",
                assessment_date="2024-06-01",
                doctor="王医生",
                assessment_data="心肺未见异常",
                summary="未见明显异常",
            ),
            LaboratoryItem(
                customer_id=customer.id,
                exam_id="E1",
                test_category="生化",
                item_name="空腹血糖",
                item_result="6.5",
                item_unit="mmol/L",
                reference_value="3.9-6.1",
                abnormal_flag=True,
            ),
            LaboratoryItem(
                customer_id=customer.id,
                exam_id="E3",
                test_category="血常规",
                item_name="白细胞计数",
                item_result="5.6",
                item_unit="10^9/L",
                reference_value="3.5-9.5",
                abnormal_flag=False,
            ),
        ])
        await db.commit()

        return {
            "customer_id": customer.id,
            "customer_name": customer.name,
            "inactive_customer_id": inactive.id,
        }


@pytest.fixture(scope="function")
async def test_client_with_db(
    session_factory,
    fake_analysis,
    fake_converter,
    task_runner,
    settings_cache,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with a per-test database.

    Overrides the database, session factory, analysis service, converter,
    task runner and settings cache dependencies of the app.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_analysis_service] = lambda: fake_analysis
    app.dependency_overrides[get_pdf_generator] = lambda: fake_converter
    app.dependency_overrides[get_task_runner] = lambda: task_runner
    app.dependency_overrides[get_system_settings] = lambda: settings_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Cleanup
    await task_runner.drain(timeout=5)
    app.dependency_overrides.clear()
