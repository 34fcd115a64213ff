"""Shared fixtures for the contract review tests."""
import io
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from contract_review import models
from contract_review.config import Settings
from contract_review.database import Database
from contract_review.main import create_app

SAMPLE_CONTRACT_LINES = [
    "SERVICE AGREEMENT",
    "",
    "This Service Agreement ('Agreement') is entered into between",
    "ABC Corporation and XYZ Solutions on January 15, 2024.",
    "",
    "Term: This agreement shall remain in effect for a period of 12 months",
    "from the effective date.",
    "",
    "Payment Terms: Client agrees to pay within Net 30 days of invoice date.",
    "",
    "Termination: Either party may terminate this agreement with 30 days",
    "written notice. Upon termination, all outstanding payments become due.",
    "",
    "Liability Cap: The total liability of either party under this agreement",
    "shall not exceed USD $100,000.",
]

SAMPLE_CONTRACT_TEXT = "\n".join(SAMPLE_CONTRACT_LINES)


def build_pdf(lines=SAMPLE_CONTRACT_LINES, pages=1) -> bytes:
    """Render lines of text onto PDF pages; no lines gives a blank, scan-like page."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle("Service Agreement")
    c.setAuthor("ABC Corporation")
    width, height = letter

    for _ in range(pages):
        if not lines:
            # Only graphics, like an image-only scan
            c.rect(100, 100, width - 200, height - 200, fill=1)
        c.setFont("Helvetica", 11)
        y = height - 100
        for line in lines:
            c.drawString(100, y, line)
            y -= 15
        c.showPage()

    c.save()
    return buffer.getvalue()


def encrypt_pdf(data: bytes, password: str = "secret") -> bytes:
    writer = PdfWriter(clone_from=PdfReader(io.BytesIO(data)))
    writer.encrypt(user_password=password, owner_password="owner", algorithm="RC4-128")
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        use_sqlite=True,
        sqlite_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        signed_url_secret="test-secret"
    )


@pytest.fixture
def database(settings):
    """Create test database tables."""
    database = Database(settings.effective_database_url)
    database.create_all()
    yield database
    database.drop_all()
    database.dispose()


@pytest.fixture
def seed(database):
    """Two organizations: one with an admin and a member, one with an outsider."""
    with database.session() as db:
        org = models.Organization(name="Acme Legal")
        other_org = models.Organization(name="Other Corp")
        db.add_all([org, other_org])
        db.flush()

        admin = models.User(organization_id=org.id, email="admin@acme.test", name="Admin", role="admin")
        member = models.User(organization_id=org.id, email="member@acme.test", name="Member")
        outsider = models.User(organization_id=other_org.id, email="someone@other.test", name="Outsider")
        db.add_all([admin, member, outsider])
        db.commit()

        return SimpleNamespace(
            org_id=org.id,
            other_org_id=other_org.id,
            admin_id=admin.id,
            member_id=member.id,
            outsider_id=outsider.id
        )


@pytest.fixture
def make_client(settings, database):
    def _make(openai_client=None) -> TestClient:
        app = create_app(settings=settings, database=database, openai_client=openai_client)
        return TestClient(app)
    return _make


@pytest.fixture
def client(make_client, seed):
    return make_client()


@pytest.fixture
def contract_id(database, seed):
    """A stored contract row (no file) for versioning and review tests."""
    with database.session() as db:
        contract = models.Contract(
            organization_id=seed.org_id,
            uploaded_by=seed.member_id,
            file_name="agreement.txt",
            file_path=f"{seed.org_id}/agreement.txt",
            file_size=42,
            file_type="text/plain",
            current_version=0,
            tags=[]
        )
        db.add(contract)
        db.commit()
        return contract.id


@pytest.fixture
def sample_pdf():
    return build_pdf()
