from __future__ import annotations

import functools
import io
import logging
import os
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List

from PIL import Image, ImageDraw, ImageFont
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

# ---- Style Configuration ----
TITLE_SIZE = 36
BODY_SIZE = 28
SMALL_SIZE = 22
LINE_H = int(BODY_SIZE * 1.5)
SMALL_LINE_H = int(SMALL_SIZE * 1.4)
PAD = 20
SEP_COLOR = (40, 40, 40)

# Column ratios for item table
ITEM_COL_RATIO = 0.46
QTY_COL_RATIO = 0.14
RATE_COL_RATIO = 0.18


@functools.lru_cache(maxsize=None)
def _font(size: int) -> ImageFont.ImageFont:
    """
    Receipt font at ``size``. Uses settings.RECEIPT_FONT when it points at a
    TrueType file, Pillow's built-in font otherwise.
    """
    path = str(getattr(settings, "RECEIPT_FONT", "") or "")
    if path:
        if os.path.exists(path):
            try:
                return ImageFont.truetype(path, size=size)
            except OSError as e:
                logger.error("Cannot load receipt font %s: %s", path, e)
        else:
            logger.warning("Receipt font not found: %s", path)
    return ImageFont.load_default(size=size)


# ---- Helper Functions ----
def _money(v) -> str:
    q = Decimal(v or 0).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:,.2f}"


def _text_w(draw: ImageDraw.ImageDraw, txt: str, font) -> int:
    bbox = draw.textbbox((0, 0), txt or "", font=font)
    return int(bbox[2] - bbox[0])


def _ellipsize(draw: ImageDraw.ImageDraw, text: str, font, max_w: int) -> str:
    """Truncate text with ellipsis if too long."""
    if _text_w(draw, text, font) <= max_w:
        return text
    ell = "..."
    lo, hi = 0, len(text)
    best = ""
    while lo <= hi:
        mid = (lo + hi) // 2
        trial = text[:mid] + ell
        if _text_w(draw, trial, font) <= max_w:
            best = trial
            lo = mid + 1
        else:
            hi = mid - 1
    return best


def _draw_center(draw, x0: int, width: int, y: int, txt: str, font, line_h: int) -> int:
    w = _text_w(draw, txt, font)
    draw.text((x0 + (width - w) // 2, y), txt, fill="black", font=font)
    return y + line_h


def _draw_divider(draw, x: int, y: int, width: int) -> int:
    y += int(BODY_SIZE * 0.3)
    draw.line((x, y, x + width, y), fill=SEP_COLOR, width=2)
    return y + int(BODY_SIZE * 0.5)


def _draw_kv_row(draw, x: int, y: int, width: int, left_txt: str, right_txt: str, font) -> int:
    """Key left-aligned, value right-aligned on one line."""
    draw.text((x, y), left_txt, fill="black", font=font)
    if right_txt:
        rw = _text_w(draw, right_txt, font)
        draw.text((x + width - rw, y), right_txt, fill="black", font=font)
    return y + LINE_H


def _settlement_rows(rental) -> List[tuple]:
    rows = [
        ("Rental charges", _money(rental.total_charges)),
        ("Late fee", _money(rental.late_fee)),
        ("Damage charges", _money(rental.damage_charges)),
    ]
    if rental.deposit_returned:
        rows.append(("Deposit offset", "-" + _money(rental.security_deposit)))
    if rental.amount_paid:
        rows.append(("Paid earlier", "-" + _money(rental.amount_paid)))
    due = Decimal(rental.amount_due or 0)
    rows.append(("Refund due" if due < 0 else "Amount due", _money(abs(due))))
    if rental.return_payment_method:
        rows.append((f"Paid ({rental.get_return_payment_method_display()})",
                     _money(rental.return_payment_amount)))
    return rows


# ---- Rental Settlement Receipt ----
def render_rental_receipt(rental, *, items: Iterable, width_px: int = 576) -> bytes:
    """Render a rental settlement receipt and return it as PNG bytes."""
    items = list(items)
    pad = PAD
    x0 = pad
    content_w = width_px - pad * 2

    font_title = _font(TITLE_SIZE)
    font_body = _font(BODY_SIZE)
    font_small = _font(SMALL_SIZE)

    store_name = str(getattr(settings, "STORE_NAME", "") or "Store")
    header_lines = [
        f"Rental: {rental.rental_number}",
        f"Customer: {rental.customer.name}",
        f"Period: {rental.start_date:%d-%m-%Y} to {rental.expected_return_date:%d-%m-%Y}",
        f"Status: {rental.get_status_display()}",
    ]
    if rental.actual_return_date:
        header_lines.append(f"Returned on: {rental.actual_return_date:%d-%m-%Y}")
    elif rental.next_return_date:
        header_lines.append(f"Next return: {rental.next_return_date:%d-%m-%Y}")
    settlement = _settlement_rows(rental)

    height = (
        pad
        + int(TITLE_SIZE * 1.4)
        + LINE_H * len(header_lines)
        + BODY_SIZE * 2           # dividers
        + LINE_H                  # table header
        + LINE_H * len(items)
        + BODY_SIZE               # divider
        + LINE_H * len(settlement)
        + SMALL_LINE_H * 2
        + pad
    )
    img = Image.new("RGB", (width_px, height), color=(255, 255, 255))
    d = ImageDraw.Draw(img)

    y = pad
    y = _draw_center(d, x0, content_w, y, store_name, font_title, int(TITLE_SIZE * 1.4))
    for line in header_lines:
        d.text((x0, y), line, fill="black", font=font_body)
        y += LINE_H
    y = _draw_divider(d, x0, y, content_w)

    col_item = int(content_w * ITEM_COL_RATIO)
    col_qty = int(content_w * QTY_COL_RATIO)
    col_rate = int(content_w * RATE_COL_RATIO)
    col_amt = content_w - col_item - col_qty - col_rate

    def _row(cells, font):
        xs = [x0, x0 + col_item, x0 + col_item + col_qty, x0 + col_item + col_qty + col_rate]
        widths = [col_item, col_qty, col_rate, col_amt]
        for i, (cx, cw, txt) in enumerate(zip(xs, widths, cells)):
            txt = _ellipsize(d, txt, font, cw - 6)
            if i == 0:
                d.text((cx, y), txt, fill="black", font=font)
            else:
                d.text((cx + cw - _text_w(d, txt, font), y), txt, fill="black", font=font)

    _row(["Item", "Qty", "Rate", "Amount"], font_body)
    y += LINE_H
    for it in items:
        qty = f"{it.quantity_returned}/{it.quantity}"
        rate = f"{_money(it.rate_amount)}/{it.rate_type[0]}"
        _row([it.product.name, qty, rate, _money(it.total)], font_small)
        y += LINE_H
    y = _draw_divider(d, x0, y, content_w)

    for label, value in settlement:
        y = _draw_kv_row(d, x0, y, content_w, label, value, font_body)

    printed_at = timezone.localtime().strftime("%Y-%m-%d %H:%M")
    _draw_center(d, x0, content_w, y + SMALL_LINE_H // 2, f"Printed {printed_at}", font_small, SMALL_LINE_H)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
