import logging
from decimal import Decimal, InvalidOperation
from zipfile import BadZipFile

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from django.http import HttpResponse
from django.utils.text import slugify
from django.views.decorators.http import require_GET, require_POST

from core.exceptions import ValidationFailed
from core.forms import validated
from core.permissions import teacher_or_admin_required

from .. import config
from ..forms import MarksImportForm
from ..services import MarkEntry, find_student_by_roll_number, submit_marks
from .base import ensure_can_grade_test, ensure_can_view_test, get_test_or_404
from .scores import submission_response

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Roll Number", "Student Name", "Department", "Year",
    "Marks", "Percentage", "Grade", "Status", "Remarks",
]
ROLL_NUMBER_HEADER = "roll number"
MARKS_HEADER = "marks"
REMARKS_HEADER = "remarks"


# ============ Results Export ============

@require_GET
@teacher_or_admin_required
def export_test_results(request, pk):
    """Download a test's results as an Excel workbook."""
    test = get_test_or_404(pk)
    ensure_can_view_test(request.user, test)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Results"

    # Styles
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color=config.EXCEL_HEADER_COLOR, end_color=config.EXCEL_HEADER_COLOR, fill_type="solid")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col, header in enumerate(EXPORT_HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center', wrap_text=True)
        cell.border = thin_border

    results = test.results.current().with_related().order_by('-marks_obtained', 'student__name')
    for row, result in enumerate(results, 2):
        student = result.student
        values = [
            student.roll_number or '',
            student.name,
            student.department,
            student.year,
            float(result.marks_obtained),
            round(result.percentage, 2),
            result.grade,
            'Pass' if result.is_passed else 'Fail',
            result.remarks,
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = thin_border
            if col >= 4:
                cell.alignment = Alignment(horizontal='center')

    ws.column_dimensions['A'].width = 15
    ws.column_dimensions['B'].width = 25
    for col in range(3, len(EXPORT_HEADERS) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 14

    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    filename = f"results_{test.subject.code}_{slugify(test.title) or test.pk}.xlsx"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    wb.save(response)

    logger.info(f"Results for test {test.pk} exported by {request.user.email}")
    return response


# ============ Marks Import ============

def _header_positions(header_row):
    positions = {}
    for index, value in enumerate(header_row or ()):
        if value is not None:
            positions.setdefault(str(value).strip().lower(), index)
    if ROLL_NUMBER_HEADER not in positions or MARKS_HEADER not in positions:
        raise ValidationFailed(
            'The first row must contain "Roll Number" and "Marks" columns',
            errors={'file': ['Missing Roll Number or Marks column']}
        )
    return positions


def _cell(row, index):
    if index is None or index >= len(row):
        return None
    return row[index]


def read_marks_workbook(file):
    """
    Parse an uploaded workbook into mark entries.

    Returns:
        tuple: (entries, row errors, skipped row count)
    """
    try:
        wb = openpyxl.load_workbook(file, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError):
        logger.warning("Unreadable marks workbook uploaded")
        raise ValidationFailed('Could not read the uploaded workbook', errors={'file': ['Invalid Excel file']})

    try:
        rows = wb.active.iter_rows(values_only=True)
        positions = _header_positions(next(rows, None))
        roll_col = positions[ROLL_NUMBER_HEADER]
        marks_col = positions[MARKS_HEADER]
        remarks_col = positions.get(REMARKS_HEADER)

        entries, errors, skipped = [], [], 0
        for row_num, row in enumerate(rows, 2):
            roll_number = _cell(row, roll_col)
            marks = _cell(row, marks_col)
            if roll_number is None or not str(roll_number).strip():
                continue
            if marks is None or not str(marks).strip():
                skipped += 1
                continue

            student_id = find_student_by_roll_number(roll_number)
            if student_id is None:
                errors.append({
                    'student_id': None,
                    'error': f"Row {row_num}: roll number '{roll_number}' not found",
                })
                continue
            try:
                marks_obtained = Decimal(str(marks).strip())
            except InvalidOperation:
                errors.append({
                    'student_id': student_id,
                    'error': f"Row {row_num}: invalid marks '{marks}'",
                })
                continue

            remarks = _cell(row, remarks_col)
            entries.append(MarkEntry(
                student_id=student_id,
                marks_obtained=marks_obtained,
                remarks=str(remarks).strip() if remarks is not None else '',
            ))
        return entries, errors, skipped
    finally:
        wb.close()


@require_POST
@teacher_or_admin_required
def import_test_marks(request, pk):
    """Record marks from an uploaded workbook (Roll Number, Marks, Remarks)."""
    test = get_test_or_404(pk)
    ensure_can_grade_test(request.user, test)

    form = MarksImportForm(data=request.POST, files=request.FILES)
    cleaned = validated(form)
    entries, row_errors, skipped = read_marks_workbook(cleaned['file'])

    outcome = submit_marks(test.pk, entries, request.user)
    logger.info(f"Imported marks for test {test.pk}: {len(entries)} rows read, {skipped} blank")
    return submission_response(outcome, row_errors)
