"""
QR Code Generator Module - Exam Control System
Author: Exam Control Team
Date: October 2026

This module produces the printable identifier cards scanned at the handover
desk: one card per teacher (their personal scan code) and one card per exam
envelope. Each card is a QR code with a title and subtitle printed under it.

Features:
- QR card generation for teachers and envelopes
- Base64 PNG output for the web layer
- Batch card generation
- A4 PDF sheets of cards for printing
"""

import base64
import io
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import qrcode
from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

CARD_TYPE_TEACHER = 'TEACHER'
CARD_TYPE_ENVELOPE = 'ENVELOPE'
TEACHER_SUBTITLE = 'عضو لجنة اختبارات'


class QRGenerator:
    """Generates QR identifier cards and printable sheets of them."""

    def __init__(self, output_dir: str = 'exports', font_path: Optional[str] = None):
        """
        Args:
            output_dir (str): Where PDF sheets are written
            font_path (str): TrueType font able to render Arabic titles
        """
        self.logger = logging.getLogger(__name__)
        self.output_dir = str(output_dir)
        self.font_path = font_path

        self.default_settings = {
            'version': 1,
            'error_correction': qrcode.constants.ERROR_CORRECT_M,
            'box_size': 10,
            'border': 4,
            'fill_color': 'black',
            'back_color': 'white'
        }

    def _load_fonts(self):
        try:
            if not self.font_path:
                raise OSError('no font configured')
            return (ImageFont.truetype(self.font_path, 18),
                    ImageFont.truetype(self.font_path, 13))
        except (IOError, OSError):
            return ImageFont.load_default(), ImageFont.load_default()

    def make_qr_image(self, data: str) -> Image.Image:
        """Plain QR image for ``data``."""
        settings = self.default_settings
        qr = qrcode.QRCode(
            version=settings['version'],
            error_correction=settings['error_correction'],
            box_size=settings['box_size'],
            border=settings['border']
        )
        qr.add_data(data)
        qr.make(fit=True)
        img = qr.make_image(fill_color=settings['fill_color'], back_color=settings['back_color'])
        return img.get_image().convert('RGB')

    def _add_caption(self, qr_img: Image.Image, title: str, subtitle: str, code: str) -> Image.Image:
        """Print title, subtitle and the readable code under the QR image."""
        width, height = qr_img.size
        card = Image.new('RGB', (width, height + 90), 'white')
        card.paste(qr_img, (0, 0))

        draw = ImageDraw.Draw(card)
        font_large, font_small = self._load_fonts()

        y = height + 5
        for text, font in ((title, font_large), (subtitle, font_small), (code, font_small)):
            if not text:
                continue
            try:
                bbox = draw.textbbox((0, 0), text, font=font)
                draw.text(((width - (bbox[2] - bbox[0])) // 2, y), text, fill='black', font=font)
            except UnicodeEncodeError:
                # bitmap fallback font cannot encode Arabic text
                self.logger.warning(f"Caption not rendered with current font: {text!r}")
            y += 28
        return card

    def generate_card(self, code: str, title: str, subtitle: str = '',
                      card_type: str = CARD_TYPE_ENVELOPE) -> Dict[str, Any]:
        """
        Generate one identifier card.

        Args:
            code (str): Scan code encoded in the QR
            title (str): Main caption
            subtitle (str): Secondary caption
            card_type (str): TEACHER or ENVELOPE

        Returns:
            Dict[str, Any]: Card image as base64 PNG plus its metadata
        """
        if not code:
            raise ValueError('Card code is required')

        img = self._add_caption(self.make_qr_image(code), title, subtitle, code)
        buffer = io.BytesIO()
        img.save(buffer, format='PNG')

        return {
            'success': True,
            'type': card_type,
            'code': code,
            'title': title,
            'subtitle': subtitle,
            'image_base64': base64.b64encode(buffer.getvalue()).decode(),
            'image_size': img.size,
            'filename': f"qr_{code}.png"
        }

    def generate_teacher_card(self, user) -> Dict[str, Any]:
        return self.generate_card(user.barcode, user.name or 'مستخدم غير معروف',
                                  TEACHER_SUBTITLE, CARD_TYPE_TEACHER)

    def generate_envelope_card(self, envelope, committee_name: Optional[str] = None) -> Dict[str, Any]:
        return self.generate_card(envelope.barcode, f"{envelope.subject} - {envelope.grade}",
                                  committee_name or '', CARD_TYPE_ENVELOPE)

    def batch_generate_cards(self, teachers: List, envelopes: List,
                             committee_names: Dict[str, str]) -> Dict[str, Any]:
        """
        Cards for every teacher and every envelope.

        Args:
            teachers (List[User]): Teachers to print cards for
            envelopes (List[ExamEnvelope]): Envelopes to print cards for
            committee_names (Dict[str, str]): Committee name by committee id

        Returns:
            Dict[str, Any]: Generated cards and per-card errors
        """
        results = {'successful': 0, 'failed': 0, 'cards': [], 'errors': []}

        jobs = [(t.barcode, lambda t=t: self.generate_teacher_card(t)) for t in teachers]
        jobs += [
            (e.barcode, lambda e=e: self.generate_envelope_card(e, committee_names.get(e.committee_id)))
            for e in envelopes
        ]
        for code, job in jobs:
            try:
                results['cards'].append(job())
                results['successful'] += 1
            except ValueError as e:
                results['failed'] += 1
                results['errors'].append({'code': code, 'error': str(e)})

        results['success'] = results['failed'] == 0
        self.logger.info(f"Batch card generation completed: {results['successful']} cards, {results['failed']} failed")
        return results

    def create_cards_pdf(self, cards: List[Dict[str, Any]],
                         output_filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Lay cards out on A4 pages (2 x 3 grid) for printing.

        Returns:
            Dict[str, Any]: PDF path and card count
        """
        if not output_filename:
            output_filename = f"qr_cards_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"

        os.makedirs(self.output_dir, exist_ok=True)
        output_path = os.path.join(self.output_dir, output_filename)

        c = canvas.Canvas(output_path, pagesize=A4)
        width, height = A4

        per_row, per_col = 2, 3
        per_page = per_row * per_col
        cell_w, cell_h = width / per_row, height / per_col
        card_w, card_h = cell_w * 0.8, cell_h * 0.8

        for i, card in enumerate(cards):
            if i > 0 and i % per_page == 0:
                c.showPage()

            row = (i % per_page) // per_row
            col = (i % per_page) % per_row
            x = col * cell_w + (cell_w - card_w) / 2
            y = height - (row + 1) * cell_h + (cell_h - card_h) / 2

            image = ImageReader(io.BytesIO(base64.b64decode(card['image_base64'])))
            c.drawImage(image, x, y, width=card_w, height=card_h, preserveAspectRatio=True)

        c.save()
        self.logger.info(f"Card sheet written to {output_path}")
        return {
            'success': True,
            'filename': output_filename,
            'path': output_path,
            'total_cards': len(cards)
        }
