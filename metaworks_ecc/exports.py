"""PDF and Excel documents: policy PDFs, risk register export, plan import/template"""

import glob
import os
import re
from datetime import date, datetime, timedelta
from io import BytesIO
from xml.sax.saxutils import escape

import arabic_reshaper
from bidi.algorithm import get_display
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm, inch
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from .models import ValidationError


XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

ARABIC_FONT_PATHS = [
    '/usr/share/fonts/truetype/noto/NotoSansArabic-Regular.ttf',
    '/usr/share/fonts/opentype/noto/NotoSansArabic-Regular.ttf',
    '/usr/share/fonts/truetype/noto/NotoNaskhArabic-Regular.ttf',
    '/usr/share/fonts/truetype/freefont/FreeSans.ttf',
    '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
    '/usr/share/fonts/TTF/DejaVuSans.ttf',
    'static/fonts/Amiri-Regular.ttf',
    'static/fonts/NotoSansArabic-Regular.ttf',
]

HEADER_FONT = Font(bold=True, color='FFFFFF', size=11)
HEADER_FILL = PatternFill(start_color='667eea', end_color='667eea', fill_type='solid')
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center', wrap_text=True)
CELL_ALIGNMENT = Alignment(horizontal='left', vertical='top', wrap_text=True)
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)

RISK_LEVEL_FILLS = {
    'Critical': 'F8D7DA',
    'High': 'FFE5D0',
    'Medium': 'FFF3CD',
    'Low': 'D4EDDA',
}


# ---------------------------------------------------------------------------
# Policy PDF
# ---------------------------------------------------------------------------

_arabic_font = None


def _register_arabic_font():
    """Register the first Arabic-capable TTF found. Returns its font name or None."""
    global _arabic_font
    if _arabic_font:
        return _arabic_font

    candidates = glob.glob('/usr/share/fonts/**/[Nn]oto*[Aa]rabic*.ttf', recursive=True)
    candidates += glob.glob('/usr/share/fonts/**/[Aa]miri*.ttf', recursive=True)
    candidates += ARABIC_FONT_PATHS
    for font_path in candidates:
        if not os.path.exists(font_path):
            continue
        try:
            pdfmetrics.registerFont(TTFont('ArabicFont', font_path))
        except Exception as e:
            print(f"⚠️ Failed to register font {font_path}: {e}", flush=True)
            continue
        print(f"✅ Registered Arabic font: {font_path}", flush=True)
        _arabic_font = 'ArabicFont'
        return _arabic_font

    print("⚠️ No Arabic font found, PDF will show boxes for Arabic text", flush=True)
    return None


def shape_arabic(text, font_name='Helvetica', font_size=11, width=None):
    """Reshape and reorder Arabic text for the PDF, wrapping it manually.

    get_display is applied per line: running it over a whole paragraph and
    letting reportlab wrap afterwards scrambles the word order.
    """
    text = str(text or '').strip()
    if not text:
        return text
    reshaped = arabic_reshaper.reshape(text)
    if width is None or stringWidth(reshaped, font_name, font_size) <= width:
        return get_display(reshaped)

    lines = []
    current = []
    current_width = 0
    space_width = stringWidth(' ', font_name, font_size)
    for word in reshaped.split(' '):
        word_width = stringWidth(word, font_name, font_size)
        test_width = current_width + word_width + (space_width if current else 0)
        if test_width > width and current:
            lines.append(get_display(' '.join(current)))
            current = [word]
            current_width = word_width
        else:
            current.append(word)
            current_width = test_width
    if current:
        lines.append(get_display(' '.join(current)))
    return '<br/>'.join(lines)


def _policy_styles(is_arabic, font_name, bold_name):
    styles = getSampleStyleSheet()
    extra = {'alignment': TA_RIGHT} if is_arabic else {}
    return {
        'title': ParagraphStyle('PolicyTitle', parent=styles['Title'], fontSize=22, spaceAfter=24,
                                textColor=colors.HexColor('#1a365d'), fontName=bold_name, **extra),
        'h1': ParagraphStyle('PolicyH1', parent=styles['Heading1'], fontSize=18, spaceBefore=20, spaceAfter=12,
                             textColor=colors.HexColor('#1a365d'), fontName=bold_name, **extra),
        'h2': ParagraphStyle('PolicyH2', parent=styles['Heading2'], fontSize=14, spaceBefore=15, spaceAfter=10,
                             textColor=colors.HexColor('#2d3748'), fontName=bold_name, **extra),
        'normal': ParagraphStyle('PolicyNormal', parent=styles['Normal'], fontSize=11, spaceAfter=8,
                                 leading=18 if is_arabic else 16, fontName=font_name, **extra),
        'bullet': ParagraphStyle('PolicyBullet', parent=styles['Normal'], fontSize=11, spaceAfter=6,
                                 fontName=font_name,
                                 **({'rightIndent': 20} if is_arabic else {'leftIndent': 20}), **extra),
    }


def build_policy_pdf(content, title='Security Policy', language='en'):
    """Render a markdown policy to PDF bytes."""
    is_arabic = language == 'ar'
    font_name = 'Helvetica'
    bold_name = 'Helvetica-Bold'
    if is_arabic:
        registered = _register_arabic_font()
        if registered:
            font_name = bold_name = registered

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=1.5*cm,
        leftMargin=1.5*cm,
        topMargin=2*cm,
        bottomMargin=2*cm,
        title=title,
    )
    styles = _policy_styles(is_arabic, font_name, bold_name)
    wrap_width = doc.width - 12

    def text_for(raw, style_font=font_name, size=11, indent=0):
        raw = escape(raw)
        if is_arabic:
            return shape_arabic(raw, style_font, size, wrap_width - indent)
        return re.sub(r'\*\*(.+?)\*\*', r'<b>\1</b>', raw)

    story = [Paragraph(text_for(title, bold_name, 22), styles['title']), Spacer(1, 0.2*inch)]

    for line in (content or '').split('\n'):
        line = line.strip()
        if not line:
            continue
        if line == '---':
            story.append(Spacer(1, 0.2*inch))
        elif line.startswith('# '):
            story.append(Paragraph(text_for(line[2:], bold_name, 18), styles['h1']))
        elif line.startswith('## ') or line.startswith('### '):
            story.append(Paragraph(text_for(line.lstrip('#').strip(), bold_name, 14), styles['h2']))
        elif line.startswith('- ') or line.startswith('* '):
            text = text_for(line[2:], indent=20)
            story.append(Paragraph(text + ' •' if is_arabic else '• ' + text, styles['bullet']))
        elif re.match(r'^\d+\.\s', line):
            num, raw = line.split('.', 1)
            text = text_for(raw.strip(), indent=20)
            story.append(Paragraph(f"{text} .{num}" if is_arabic else f"{num}. {text}", styles['bullet']))
        else:
            story.append(Paragraph(text_for(line), styles['normal']))

    doc.build(story)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

def _write_header(ws, headers, row=1):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        cell.border = THIN_BORDER


def _workbook_bytes(wb):
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


RISK_REGISTER_COLUMNS = [
    ('ID', 'id', 8),
    ('Category', 'category', 20),
    ('Subcategory', 'subcategory', 20),
    ('Title', 'title', 35),
    ('Description', 'description', 50),
    ('Risk Level', 'risk_level', 12),
    ('Impact', 'impact', 40),
    ('Likelihood', 'likelihood', 12),
    ('Threats', 'threats', 35),
    ('Vulnerabilities', 'vulnerabilities', 35),
    ('Assets', 'assets', 35),
    ('Controls', 'controls', 35),
    ('Mitigation Strategies', 'mitigation_strategies', 40),
    ('Compliance Frameworks', 'compliance_frameworks', 30),
    ('Tags', 'tags', 25),
]


def build_risk_register_workbook(entries):
    """Risk register rows to .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = 'Risk Register'
    _write_header(ws, [header for header, _, _ in RISK_REGISTER_COLUMNS])

    for row, entry in enumerate(entries, 2):
        for col, (_, key, _) in enumerate(RISK_REGISTER_COLUMNS, 1):
            value = entry.get(key)
            if isinstance(value, list):
                value = ', '.join(str(v) for v in value)
            cell = ws.cell(row=row, column=col, value=value)
            cell.alignment = CELL_ALIGNMENT
            cell.border = THIN_BORDER
            if key == 'risk_level' and value in RISK_LEVEL_FILLS:
                cell.fill = PatternFill(start_color=RISK_LEVEL_FILLS[value], end_color=RISK_LEVEL_FILLS[value], fill_type='solid')

    for col, (_, _, width) in enumerate(RISK_REGISTER_COLUMNS, 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = 'A2'
    return _workbook_bytes(wb)


PLAN_TEMPLATE_HEADERS = [
    'Title', 'Description', 'Risk Level', 'Category', 'Subcategory',
    'Mitigation Strategy', 'Responsible Party', 'Target Date', 'Budget',
    'Status', 'Progress', 'Impact', 'Likelihood', 'Current Controls', 'Residual Risk',
]

PLAN_TEMPLATE_EXAMPLES = [
    [
        'Data Breach Risk',
        'Risk of unauthorized access to customer personal data through weak access controls',
        'High', 'Data Protection', 'Access Control',
        'Implement multi-factor authentication and regular access reviews',
        'IT Security Manager', '2024-06-30', '$15,000', 'Planned', '0',
        'High financial and reputational damage', 'Medium', 'Basic password protection', 'Low',
    ],
    [
        'System Outage Risk',
        'Risk of critical business systems becoming unavailable during peak hours',
        'Critical', 'Business Continuity', 'Infrastructure',
        'Deploy redundant systems and implement automated failover',
        'Infrastructure Manager', '2024-05-15', '$50,000', 'In Progress', '25',
        'Business operations disruption', 'Low', 'Single system deployment', 'Medium',
    ],
]


def build_plan_template_workbook():
    """Import template for risk management plans."""
    wb = Workbook()
    ws = wb.active
    ws.title = 'Risk Template'
    _write_header(ws, PLAN_TEMPLATE_HEADERS)
    for row, example in enumerate(PLAN_TEMPLATE_EXAMPLES, 2):
        for col, value in enumerate(example, 1):
            ws.cell(row=row, column=col, value=value).border = THIN_BORDER
    for col in range(1, len(PLAN_TEMPLATE_HEADERS) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 22
    return _workbook_bytes(wb)


# header substrings tried in order for each plan field
PLAN_COLUMN_ALIASES = {
    'title': ['title', 'risk title', 'name', 'risk name'],
    'description': ['description', 'risk description', 'details'],
    'riskLevel': ['risk level', 'level', 'severity', 'priority'],
    'category': ['category', 'risk category', 'domain', 'area'],
    'subcategory': ['subcategory', 'subdomain', 'subarea'],
    'mitigationStrategy': ['mitigation', 'mitigation strategy', 'controls', 'treatment'],
    'responsibleParty': ['responsible', 'owner', 'assignee', 'responsible party'],
    'targetDate': ['target date', 'due date', 'deadline', 'completion date'],
    'budget': ['budget', 'cost', 'investment'],
    'status': ['status', 'state', 'progress status'],
    'progress': ['progress', 'completion', 'percent'],
    'impact': ['impact', 'business impact', 'consequence'],
    'likelihood': ['likelihood', 'probability', 'chance'],
    'currentControls': ['current controls', 'existing controls', 'controls in place'],
    'residualRisk': ['residual risk', 'remaining risk', 'final risk'],
}


def normalize_risk_level(value):
    text = str(value or 'medium').lower()
    if 'critical' in text or '4' in text:
        return 'Critical'
    if 'high' in text or '3' in text:
        return 'High'
    if 'low' in text or '1' in text:
        return 'Low'
    return 'Medium'


def normalize_status(value):
    text = str(value or 'planned').lower()
    if 'progress' in text or 'active' in text:
        return 'In Progress'
    if 'complete' in text or 'done' in text:
        return 'Completed'
    if 'hold' in text or 'pause' in text:
        return 'On Hold'
    return 'Planned'


def parse_date(value):
    """ISO date string from a cell value; today when the value is unusable."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Excel serial number
        return (date(1899, 12, 30) + timedelta(days=int(value))).isoformat()
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip()[:10]).date().isoformat()
        except ValueError:
            pass
    return date.today().isoformat()


def parse_progress(value):
    try:
        progress = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, progress))


def _row_to_plan(headers, row, row_number):
    def column(field, default=''):
        for alias in PLAN_COLUMN_ALIASES[field]:
            index = next((i for i, header in enumerate(headers) if header and alias in header), None)
            if index is not None and index < len(row) and row[index] not in (None, ''):
                return row[index]
        return default

    def text(field, default=''):
        value = column(field)
        return str(value).strip() if value not in (None, '') else default

    return {
        'title': text('title', f'Risk {row_number}'),
        'description': text('description', 'Imported from Excel'),
        'riskLevel': normalize_risk_level(column('riskLevel')),
        'category': text('category', 'General'),
        'subcategory': text('subcategory'),
        'mitigationStrategy': text('mitigationStrategy', 'To be defined'),
        'responsibleParty': text('responsibleParty', 'To be assigned'),
        'targetDate': parse_date(column('targetDate', None)),
        'budget': text('budget'),
        'status': normalize_status(column('status')),
        'progress': parse_progress(column('progress', 0)),
        'impact': text('impact'),
        'likelihood': text('likelihood'),
        'currentControls': text('currentControls'),
        'residualRisk': text('residualRisk'),
    }


def validate_plan_row(plan):
    errors = []
    if len(plan.get('title') or '') < 3:
        errors.append('Title must be at least 3 characters')
    if len(plan.get('description') or '') < 10:
        errors.append('Description must be at least 10 characters')
    if len(plan.get('mitigationStrategy') or '') < 10:
        errors.append('Mitigation strategy must be at least 10 characters')
    if len(plan.get('responsibleParty') or '') < 3:
        errors.append('Responsible party is required')
    return errors


def parse_plan_workbook(stream):
    """Read risk management plans from the first sheet of a workbook.

    Returns (plans, errors); plans are camelCase payloads, errors are
    "Row <n>: ..." strings using spreadsheet row numbers.
    """
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f'Could not read Excel file: {e}')
    rows = list(wb.worksheets[0].iter_rows(values_only=True))
    wb.close()

    if len(rows) < 2:
        raise ValidationError('Excel file must contain at least a header row and one data row')

    headers = [str(h).strip().lower() if h is not None else '' for h in rows[0]]
    plans = []
    errors = []
    for row_number, row in enumerate(rows[1:], 2):
        if not any(cell not in (None, '') for cell in row):
            continue
        plan = _row_to_plan(headers, row, row_number)
        problems = validate_plan_row(plan)
        if problems:
            errors.append(f"Row {row_number}: {', '.join(problems)}")
        else:
            plans.append(plan)
    return plans, errors
