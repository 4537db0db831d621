from __future__ import annotations

import os
from datetime import date
from io import BytesIO

from flask import current_app
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .certificates_layout import (
    BODY_FONT,
    BRAND_PALETTE,
    CAPTION_FONT,
    CAPTION_SIZE,
    CERT_ID_SIZE,
    CERT_ID_Y,
    CREAM,
    DARK_GRAY,
    DESCRIPTION_LEADING,
    DESCRIPTION_SIZE,
    FAINT_GRAY,
    FOOTER_COLUMN_INSET,
    FOOTER_LABEL_SIZE,
    FOOTER_VALUE_SIZE,
    FOOTER_Y,
    GRAY,
    INNER_MARGIN,
    LIGHT_GRAY,
    LOGO_MAX_HEIGHT,
    LOGO_MAX_WIDTH,
    MESSAGE_LEADING,
    MESSAGE_SIZE,
    NAME_RULE_MAX,
    NAME_RULE_PADDING,
    NAME_SIZE,
    OUTER_BORDER_WIDTH,
    OUTER_MARGIN,
    PAGE_SIZE,
    PERIOD_SIZE,
    TEXT_SIDE_MARGIN,
    TIER_SIZE,
    TITLE_FONT,
    TITLE_RULE_WIDTH,
    TITLE_SIZE,
    TITLE_TEXT,
    TOP_OFFSET,
    Palette,
    parse_hex_color,
)
from .storage import (
    certificate_public_path,
    certificates_dir,
    ensure_dir,
    resolve_public_path,
    write_atomic,
)
from .time import fmt_long_date


def wrap_text(text: str, font_name: str, font_size: float, max_width: float) -> list[str]:
    """Greedy word wrap measured with the font's metrics.

    A word wider than max_width sits alone on its own line; words are
    never split.
    """

    lines: list[str] = []
    current = ""
    for word in (text or "").split():
        candidate = f"{current} {word}" if current else word
        if current and stringWidth(candidate, font_name, font_size) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def resolve_signature(*candidates: str | None) -> str:
    """Return the first non-blank candidate, else an empty string."""
    for value in candidates:
        cleaned = (value or "").strip()
        if cleaned:
            return cleaned
    return ""


def _load_logo(logo_path: str | None, site_root: str) -> ImageReader | None:
    if not logo_path:
        return None
    absolute = resolve_public_path(site_root, logo_path)
    if not absolute or not os.path.isfile(absolute):
        current_app.logger.warning("[CERT-LOGO] missing logo path=%s", logo_path)
        return None
    try:
        with Image.open(absolute) as img:
            img.load()
            image = img.convert("RGBA") if img.mode in ("P", "LA") else img.copy()
    except (OSError, ValueError) as exc:
        current_app.logger.warning(
            "[CERT-LOGO] could not decode logo path=%s error=%s", logo_path, exc
        )
        return None
    return ImageReader(image)


def _draw_centred(c: canvas.Canvas, y: float, text: str, font: str, size: float, color) -> None:
    c.setFont(font, size)
    c.setFillColorRGB(*color)
    c.drawCentredString(PAGE_SIZE[0] / 2.0, y, text)


def _draw_rule(c: canvas.Canvas, y: float, width: float, thickness: float, color, center_x: float | None = None) -> None:
    cx = PAGE_SIZE[0] / 2.0 if center_x is None else center_x
    c.setStrokeColorRGB(*color)
    c.setLineWidth(thickness)
    c.line(cx - width / 2.0, y, cx + width / 2.0, y)


def _draw_frame(c: canvas.Canvas, palette: Palette) -> None:
    w, h = PAGE_SIZE
    c.setFillColorRGB(*CREAM)
    c.rect(0, 0, w, h, stroke=0, fill=1)

    c.setStrokeColorRGB(*palette.primary)
    c.setLineWidth(OUTER_BORDER_WIDTH)
    c.rect(OUTER_MARGIN, OUTER_MARGIN, w - 2 * OUTER_MARGIN, h - 2 * OUTER_MARGIN, stroke=1, fill=0)

    c.setStrokeColorRGB(*palette.secondary)
    c.setLineWidth(1)
    c.rect(INNER_MARGIN, INNER_MARGIN, w - 2 * INNER_MARGIN, h - 2 * INNER_MARGIN, stroke=1, fill=0)


def _draw_footer(
    c: canvas.Canvas,
    palette: Palette,
    issued_on: date,
    signature_name: str,
    signature_title: str,
    certificate_id: str,
) -> None:
    w, _ = PAGE_SIZE
    left_x = FOOTER_COLUMN_INSET
    right_x = w - FOOTER_COLUMN_INSET
    rule_y = FOOTER_Y + 22
    value_y = FOOTER_Y + 30
    label_y = FOOTER_Y + 8

    _draw_rule(c, rule_y, 140, 1, DARK_GRAY, center_x=left_x)
    c.setFont(BODY_FONT, FOOTER_VALUE_SIZE)
    c.setFillColorRGB(*DARK_GRAY)
    c.drawCentredString(left_x, value_y, fmt_long_date(issued_on))
    c.setFont(BODY_FONT, FOOTER_LABEL_SIZE)
    c.setFillColorRGB(*LIGHT_GRAY)
    c.drawCentredString(left_x, label_y, "Date")

    _draw_rule(c, rule_y, 160, 1, DARK_GRAY, center_x=right_x)
    if signature_name:
        c.setFont(BODY_FONT, FOOTER_VALUE_SIZE)
        c.setFillColorRGB(*DARK_GRAY)
        c.drawCentredString(right_x, value_y, signature_name)
    if signature_title:
        c.setFont(BODY_FONT, FOOTER_LABEL_SIZE)
        c.setFillColorRGB(*palette.secondary)
        c.drawCentredString(right_x, label_y, signature_title)

    _draw_centred(c, CERT_ID_Y, f"Certificate ID: {certificate_id}", BODY_FONT, CERT_ID_SIZE, FAINT_GRAY)


def render_certificate(
    *,
    certificate_id: str,
    employee,
    tier,
    template=None,
    sender=None,
    custom_message: str | None = None,
    achievement_description: str | None = None,
    period: str | None = None,
    company_name: str | None = None,
    company_logo_path: str | None = None,
    signature_name: str | None = None,
    signature_title: str | None = None,
    issued_on: date | None = None,
) -> str:
    """Render the single-page recognition certificate and return its served path.

    The file lands at ``SITE_ROOT/uploads/certificates/<certificate_id>.pdf``.
    A logo that cannot be read is skipped; any other I/O error propagates.
    """

    site_root = current_app.config.get("SITE_ROOT", "/srv")
    w, h = PAGE_SIZE
    max_text_width = w - 2 * TEXT_SIDE_MARGIN
    palette = BRAND_PALETTE

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=PAGE_SIZE, invariant=1)
    c.setTitle(f"Certificate of Recognition - {employee.name}")
    c.setSubject(f"Certificate ID: {certificate_id}")
    if company_name:
        c.setAuthor(company_name)
    template_name = getattr(template, "name", None)
    if template_name:
        c.setKeywords(f"template:{template_name}")

    _draw_frame(c, palette)

    y = h - TOP_OFFSET
    logo = _load_logo(company_logo_path, site_root)
    if logo is not None:
        img_w, img_h = logo.getSize()
        aspect = img_w / float(img_h) if img_h else 1.0
        logo_h = LOGO_MAX_HEIGHT
        logo_w = logo_h * aspect
        if logo_w > LOGO_MAX_WIDTH:
            logo_w = LOGO_MAX_WIDTH
            logo_h = logo_w / aspect
        c.drawImage(
            logo,
            (w - logo_w) / 2.0,
            y - logo_h + 10,
            width=logo_w,
            height=logo_h,
            mask="auto",
        )
        y -= logo_h + 20
    else:
        y -= 10

    _draw_centred(c, y, TITLE_TEXT, TITLE_FONT, TITLE_SIZE, palette.primary)

    y -= 18
    _draw_rule(c, y, TITLE_RULE_WIDTH, 2, palette.primary)
    _draw_rule(c, y - 4, TITLE_RULE_WIDTH, 1, palette.secondary)

    y -= 45
    _draw_centred(c, y, "This certifies that", CAPTION_FONT, CAPTION_SIZE, GRAY)

    y -= 50
    _draw_centred(c, y, employee.name, TITLE_FONT, NAME_SIZE, DARK_GRAY)
    y -= 8
    name_width = stringWidth(employee.name, TITLE_FONT, NAME_SIZE)
    _draw_rule(c, y, min(name_width + NAME_RULE_PADDING, NAME_RULE_MAX), 1, palette.primary)

    y -= 35
    _draw_centred(c, y, "has been recognized as", CAPTION_FONT, CAPTION_SIZE, GRAY)

    y -= 45
    tier_color = parse_hex_color(getattr(tier, "color", None), palette.secondary)
    _draw_centred(c, y, (tier.name or "").upper(), TITLE_FONT, TIER_SIZE, tier_color)

    if period:
        y -= 28
        _draw_centred(c, y, f"for {period}", BODY_FONT, PERIOD_SIZE, LIGHT_GRAY)

    description = achievement_description or getattr(tier, "description", None) or ""
    if description:
        y -= 30
        for line in wrap_text(description, CAPTION_FONT, DESCRIPTION_SIZE, max_text_width):
            _draw_centred(c, y, line, CAPTION_FONT, DESCRIPTION_SIZE, GRAY)
            y -= DESCRIPTION_LEADING

    if custom_message:
        y -= 8
        for line in wrap_text(f'"{custom_message}"', CAPTION_FONT, MESSAGE_SIZE, max_text_width):
            _draw_centred(c, y, line, CAPTION_FONT, MESSAGE_SIZE, LIGHT_GRAY)
            y -= MESSAGE_LEADING

    _draw_footer(
        c,
        palette,
        issued_on or date.today(),
        resolve_signature(signature_name, getattr(sender, "signature_name", None)),
        resolve_signature(signature_title, getattr(sender, "signature_title", None)),
        certificate_id,
    )

    c.showPage()
    c.save()

    out_dir = certificates_dir(site_root)
    ensure_dir(out_dir)
    full_path = os.path.join(out_dir, f"{certificate_id}.pdf")
    write_atomic(full_path, buffer.getvalue())
    os.chmod(full_path, 0o644)

    public_path = certificate_public_path(certificate_id)
    current_app.logger.info(
        "[CERT] rendered certificate_id=%s employee=%s path=%s",
        certificate_id,
        getattr(employee, "id", None),
        public_path,
    )
    return public_path
