from __future__ import annotations

import logging
from pathlib import Path

from flask import current_app

from app.core.extensions import db
from app.core.models import (
    Case,
    CaseBOQ,
    CaseQuotation,
    DocumentKind,
    DocumentRequest,
    DocumentRequestStatus,
    utcnow,
)
from app.workflow.serializers import serialize_quotation

logger = logging.getLogger(__name__)

EXTENSION_KEY = "document_generator"


def _pdf_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def simple_pdf(lines: list[str]) -> bytes:
    heading, body = (lines[0], lines[1:]) if lines else ("", [])
    content = ["BT", "/F2 14 Tf", "48 796 Td", "16 TL", f"({_pdf_escape(heading)}) Tj", "/F1 10 Tf", "14 TL", "T*"]
    content.extend(f"T* ({_pdf_escape(line)}) Tj" for line in body)
    content.append("ET")
    stream = "\n".join(content).encode("latin-1", errors="replace")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] /Contents 6 0 R"
            b" /Resources << /Font << /F1 4 0 R /F2 5 0 R >> >> >>"
        ),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica-Bold >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
    ]

    chunks = [b"%PDF-1.4\n"]
    offsets: list[int] = []
    position = len(chunks[0])
    for number, body_bytes in enumerate(objects, start=1):
        chunk = b"%d 0 obj\n" % number + body_bytes + b"\nendobj\n"
        offsets.append(position)
        chunks.append(chunk)
        position += len(chunk)

    xref = [b"xref\n0 %d\n" % (len(objects) + 1), b"0000000000 65535 f \n"]
    xref.extend(b"%010d 00000 n \n" % offset for offset in offsets)
    trailer = b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, position)
    return b"".join(chunks + xref + [trailer])


class LocalPdfGenerator:
    """Writes one-page PDFs below ``root`` and returns their relative URL."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _write(self, relative: str, lines: list[str]) -> str:
        absolute = self.root / relative
        absolute.parent.mkdir(parents=True, exist_ok=True)
        absolute.write_bytes(simple_pdf(lines))
        return f"/documents/{relative}"

    def generate_boq_pdf(self, boq: CaseBOQ) -> str:
        lines = [
            "Bill of quantities",
            f"Case: {boq.case.case_number} - {boq.case.title}",
            f"BOQ: {boq.id}",
            "",
        ]
        lines.extend(f"{item.position}. {item.name} - {item.quantity} {item.unit}" for item in boq.items)
        return self._write(f"case-{boq.case_id}/boq-{boq.id}.pdf", lines)

    def generate_quotation_pdf(self, quotation: CaseQuotation) -> str:
        shared = serialize_quotation(quotation, external=True)
        lines = [
            "Quotation",
            f"Case: {quotation.case.case_number} - {quotation.case.client_name}",
            f"Quotation: {shared['id']}",
            "",
        ]
        for item in shared["items"]:
            lines.append(f"{item['position']}. {item['name']} {item['quantity']} x {item['rate']} = {item['total']}")
        lines.extend(
            [
                "",
                f"Subtotal: {shared['subtotal']}",
                f"Discount ({shared['discount']}%): -{shared['discount_amount']}",
                f"Tax ({shared['tax_rate']}%): {shared['tax_amount']}",
                f"Grand total: {shared['grand_total']}",
            ]
        )
        return self._write(f"case-{quotation.case_id}/quotation-{quotation.id}.pdf", lines)

    def generate_master_project_pdf(self, case: Case) -> str:
        plan = case.execution_plan
        lines = [
            "Master project record",
            f"Case: {case.case_number} - {case.title}",
            f"Client: {case.client_name}",
            f"Approved: {plan.approved_at.date().isoformat() if plan and plan.approved_at else '-'}",
            f"Budget: {case.total_budget}",
            "",
        ]
        if plan is not None:
            lines.extend(
                f"{phase.name}: {phase.start_date} -> {phase.end_date} ({phase.labor_count} workers)"
                for phase in plan.phases
            )
        return self._write(f"case-{case.id}/master-project.pdf", lines)


def init_documents(app) -> None:
    root = app.config.get("DOCUMENT_STORAGE_DIR") or str(Path(app.instance_path) / "documents")
    app.extensions.setdefault(EXTENSION_KEY, LocalPdfGenerator(Path(root)))


def document_generator():
    return current_app.extensions[EXTENSION_KEY]


def _target_org_id(kind: DocumentKind, target_id: int) -> int | None:
    model = {DocumentKind.BOQ: CaseBOQ, DocumentKind.QUOTATION: CaseQuotation, DocumentKind.MASTER_PROJECT: Case}[kind]
    record = db.session.get(model, target_id)
    return record.org_id if record is not None else None


def _render(request: DocumentRequest) -> str:
    generator = document_generator()
    if request.kind == DocumentKind.BOQ:
        return generator.generate_boq_pdf(db.session.get(CaseBOQ, request.target_id))
    if request.kind == DocumentKind.QUOTATION:
        quotation = db.session.get(CaseQuotation, request.target_id)
        url = generator.generate_quotation_pdf(quotation)
        quotation.pdf_url = url
        return url
    case = db.session.get(Case, request.target_id)
    url = generator.generate_master_project_pdf(case)
    if case.execution_plan is not None:
        case.execution_plan.master_pdf_url = url
    return url


def _attempt(request: DocumentRequest) -> bool:
    request_id = request.id
    try:
        url = _render(request)
    except Exception as exc:
        db.session.rollback()
        request = db.session.get(DocumentRequest, request_id)
        request.attempts += 1
        request.status = DocumentRequestStatus.FAILED
        request.last_error = f"{exc.__class__.__name__}: {exc}"[:500]
        db.session.commit()
        logger.error(
            "Document %s #%s failed (attempt %s)",
            request.kind.value,
            request.target_id,
            request.attempts,
            exc_info=True,
            extra={"document_kind": request.kind.value, "attempt": request.attempts},
        )
        return False
    request.attempts += 1
    request.url = url
    request.status = DocumentRequestStatus.DONE
    request.last_error = ""
    request.completed_at = utcnow()
    db.session.commit()
    logger.info("Document %s #%s stored at %s", request.kind.value, request.target_id, url)
    return True


def request_document(kind: DocumentKind, target_id: int) -> DocumentRequest | None:
    """Queue and try to produce a document for an already-committed record.

    Never raises for generation problems: the request row keeps the error and
    stays FAILED until a retry succeeds.
    """
    request = DocumentRequest.query.filter_by(kind=kind, target_id=target_id).first()
    if request is None:
        owner_org_id = _target_org_id(kind, target_id)
        if owner_org_id is None:
            logger.warning("Document %s requested for missing record %s", kind.value, target_id)
            return None
        request = DocumentRequest(org_id=owner_org_id, kind=kind, target_id=target_id)
        db.session.add(request)
        db.session.commit()
    if request.status == DocumentRequestStatus.DONE:
        return request
    _attempt(request)
    return request


def retry_pending_documents(limit: int = 100) -> tuple[int, int]:
    pending = (
        DocumentRequest.query.filter(DocumentRequest.status != DocumentRequestStatus.DONE)
        .order_by(DocumentRequest.requested_at.asc())
        .limit(limit)
        .all()
    )
    done = failed = 0
    for request in pending:
        if _attempt(request):
            done += 1
        else:
            failed += 1
    return done, failed

