from __future__ import annotations

from datetime import datetime
from io import BytesIO

from flask import current_app
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .certificate_templates import TemplateConfig
from .time import fmt_certificate_date

BORDER_MARGIN = 30
CORNER_SIZE = 40
INK = HexColor("#1F2937")
MUTED = HexColor("#6B7280")
FAINT = HexColor("#9CA3AF")
RULE = HexColor("#D1D5DB")
PAPER = HexColor("#FAFAFA")

REGULAR_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"


def verification_url(certificate_no: str) -> str:
    client_url = current_app.config["CLIENT_URL"]
    return f"{client_url}/verify-certificate?certificateNo={certificate_no}"


def fit_text(text: str, font_name: str, max_pt: int, min_pt: int, max_width: float) -> int:
    pt = max_pt
    while pt > min_pt and stringWidth(text, font_name, pt) > max_width:
        pt -= 1
    return pt


def _draw_image(c, data: bytes | None, x: float, y: float, w: float, h: float, label: str) -> None:
    if not data:
        return
    try:
        reader = ImageReader(BytesIO(data))
        c.drawImage(
            reader, x, y, width=w, height=h, mask="auto", preserveAspectRatio=True, anchor="c"
        )
    except Exception:
        current_app.logger.warning("[CERT-RENDER] skipped %s image", label, exc_info=True)


def _load_background_page(data: bytes | None):
    if not data or not data.startswith(b"%PDF"):
        return None
    try:
        return PdfReader(BytesIO(data)).pages[0]
    except (PdfReadError, IndexError, ValueError):
        current_app.logger.warning("[CERT-RENDER] unreadable background PDF skipped")
        return None


def render(
    recipient_name: str,
    credential_type_label: str,
    credential_title: str,
    certificate_no: str,
    issued_at: datetime,
    template: TemplateConfig,
) -> bytes:
    """Compose the landscape certificate PDF and return its bytes.

    Optional graphics (logo, signature, stamp, background) are skipped when
    absent or unreadable; the five data fields are always drawn.
    """
    background_page = _load_background_page(template.background)
    if background_page is not None:
        w = float(background_page.mediabox.width)
        h = float(background_page.mediabox.height)
    else:
        w, h = landscape(A4)
    center_x = w / 2.0
    primary = HexColor(template.primary_color)
    secondary = HexColor(template.secondary_color)

    def top(offset: float, size: float = 0) -> float:
        # layout offsets are measured from the top edge to the text top
        return h - offset - size * 0.8

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(w, h), invariant=1)
    c.setTitle(f"Certificate {certificate_no}")
    c.setAuthor(template.issuer_name)
    c.setSubject(credential_title)

    if background_page is None:
        c.setFillColor(PAPER)
        c.rect(0, 0, w, h, stroke=0, fill=1)
        if template.background:
            _draw_image(c, template.background, 0, 0, w, h, "background")

    c.setStrokeColor(primary)
    c.setLineWidth(3)
    c.rect(BORDER_MARGIN, BORDER_MARGIN, w - BORDER_MARGIN * 2, h - BORDER_MARGIN * 2)
    inner = BORDER_MARGIN + 10
    c.setStrokeColor(secondary)
    c.setLineWidth(1)
    c.rect(inner, inner, w - inner * 2, h - inner * 2)

    c.setStrokeColor(primary)
    c.setLineWidth(2)
    near = BORDER_MARGIN + 20
    far_x = w - BORDER_MARGIN - 20 - CORNER_SIZE
    far_y = h - BORDER_MARGIN - 20 - CORNER_SIZE
    for x, y in ((near, near), (far_x, near), (near, far_y), (far_x, far_y)):
        c.rect(x, y, CORNER_SIZE, CORNER_SIZE)

    if template.logo:
        _draw_image(c, template.logo, center_x - 40, h - 50 - 80, 80, 80, "logo")
    brand_y = 140 if template.logo else 60

    c.setFillColor(primary)
    c.setFont(BOLD_FONT, 14)
    c.drawCentredString(center_x, top(brand_y, 14), template.issuer_name)

    c.setFillColor(INK)
    c.setFont(BOLD_FONT, 42)
    c.drawCentredString(center_x, top(brand_y + 30, 42), "CERTIFICATE")
    c.setFillColor(MUTED)
    c.setFont(REGULAR_FONT, 20)
    c.drawCentredString(center_x, top(brand_y + 80, 20), "OF COMPLETION")

    c.setStrokeColor(primary)
    c.setLineWidth(2)
    c.line(center_x - 100, top(brand_y + 115), center_x + 100, top(brand_y + 115))

    c.setFillColor(MUTED)
    c.setFont(REGULAR_FONT, 14)
    c.drawCentredString(center_x, top(brand_y + 130, 14), "This is to certify that")

    name_pt = fit_text(recipient_name, BOLD_FONT, 32, 20, w - 2 * (BORDER_MARGIN + 60))
    c.setFillColor(INK)
    c.setFont(BOLD_FONT, name_pt)
    c.drawCentredString(center_x, top(brand_y + 155, 32), recipient_name)

    name_width = stringWidth(recipient_name, BOLD_FONT, name_pt)
    underline_y = top(brand_y + 195)
    c.setStrokeColor(RULE)
    c.setLineWidth(1)
    c.line(
        center_x - name_width / 2 - 20,
        underline_y,
        center_x + name_width / 2 + 20,
        underline_y,
    )

    c.setFillColor(MUTED)
    c.setFont(REGULAR_FONT, 14)
    c.drawCentredString(center_x, top(brand_y + 210, 14), "has successfully completed the")
    c.setFillColor(primary)
    c.setFont(BOLD_FONT, 14)
    c.drawCentredString(center_x, top(brand_y + 230, 14), credential_type_label.upper())

    quoted_title = f"\"{credential_title}\""
    title_pt = fit_text(quoted_title, BOLD_FONT, 22, 12, w - 2 * (BORDER_MARGIN + 40))
    c.setFillColor(INK)
    c.setFont(BOLD_FONT, title_pt)
    c.drawCentredString(center_x, top(brand_y + 255, 22), quoted_title)

    c.setFillColor(MUTED)
    c.setFont(REGULAR_FONT, 11)
    c.drawCentredString(
        center_x, top(brand_y + 295, 11), f"Issued on: {fmt_certificate_date(issued_at)}"
    )
    c.setFillColor(FAINT)
    c.setFont(REGULAR_FONT, 10)
    c.drawCentredString(center_x, top(brand_y + 315, 10), f"Certificate No: {certificate_no}")

    signature_y = 120
    left_x, col_w = 130, 190
    right_x = w - 300
    if template.signature:
        _draw_image(c, template.signature, 150, signature_y + 10, 100, 40, "signature")
    if template.stamp:
        _draw_image(c, template.stamp, w - 220, signature_y - 20, 80, 80, "stamp")

    c.setStrokeColor(RULE)
    c.setLineWidth(1)
    c.line(left_x, signature_y, left_x + col_w, signature_y)
    c.line(right_x, signature_y, right_x + col_w, signature_y)

    c.setFillColor(INK)
    c.setFont(BOLD_FONT, 12)
    c.drawCentredString(left_x + col_w / 2, signature_y - 18, template.issuer_name)
    c.drawCentredString(right_x + col_w / 2, signature_y - 18, "Verified")
    c.setFillColor(MUTED)
    c.setFont(REGULAR_FONT, 10)
    c.drawCentredString(left_x + col_w / 2, signature_y - 32, template.issuer_title)
    c.drawCentredString(right_x + col_w / 2, signature_y - 32, "Digital Certificate")

    c.setFillColor(FAINT)
    c.setFont(REGULAR_FONT, 9)
    c.drawCentredString(center_x, 60, template.footer_text)

    verify_url = verification_url(certificate_no)
    verify_text = f"Verify at: {verify_url}"
    c.setFillColor(primary)
    c.setFont(REGULAR_FONT, 8)
    c.drawCentredString(center_x, 45, verify_text)
    text_width = stringWidth(verify_text, REGULAR_FONT, 8)
    c.linkURL(
        verify_url,
        (center_x - text_width / 2, 42, center_x + text_width / 2, 53),
        relative=0,
    )

    c.showPage()
    c.save()
    overlay_bytes = buffer.getvalue()
    if background_page is None:
        return overlay_bytes

    background_page.merge_page(PdfReader(BytesIO(overlay_bytes)).pages[0])
    writer = PdfWriter()
    writer.add_page(background_page)
    out_buf = BytesIO()
    writer.write(out_buf)
    return out_buf.getvalue()
