from .assessments import test_list, test_detail
from .scores import submit_test_marks, test_results
from .import_export import export_test_results, import_test_marks
from .analytics import (
    dashboard_home, student_dashboard, class_dashboard,
    teacher_dashboard, admin_dashboard,
)
