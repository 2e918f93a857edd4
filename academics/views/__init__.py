from .subjects import (
    serialize_subject, subject_list, subject_detail,
    admin_subjects, admin_subject_detail,
)
