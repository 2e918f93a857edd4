from django import forms

from academics.models import Subject
from core.forms import IsoDateField

from . import config
from .models import Test
from .services import MarkEntry


class TestForm(forms.ModelForm):
    """
    Create or edit a test. For edits, bind through core.forms.bind_partial
    so passing_marks is always checked against the resulting max_marks.
    """
    subject = forms.ModelChoiceField(
        queryset=Subject.objects.active(),
        error_messages={'invalid_choice': 'Subject not found'}
    )
    test_date = IsoDateField()

    class Meta:
        model = Test
        fields = [
            'title', 'subject', 'test_type', 'max_marks', 'passing_marks',
            'test_date', 'duration', 'description', 'instructions', 'is_published',
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['duration'].required = False
        self.fields['is_published'].required = False

    def clean_title(self):
        return self.cleaned_data['title'].strip()

    def clean_duration(self):
        return self.cleaned_data.get('duration') or Test._meta.get_field('duration').default

    def clean_is_published(self):
        if 'is_published' not in self.data:
            return True
        return self.cleaned_data['is_published']

    def clean(self):
        cleaned_data = super().clean()
        max_marks = cleaned_data.get('max_marks')
        passing_marks = cleaned_data.get('passing_marks')

        if max_marks is not None and passing_marks is not None:
            if passing_marks > max_marks:
                self.add_error('passing_marks', 'Passing marks cannot exceed maximum marks')

        return cleaned_data


class MarkEntryForm(forms.Form):
    """One entry of a marks submission."""
    student_id = forms.IntegerField(min_value=1)
    marks_obtained = forms.DecimalField(max_digits=6, decimal_places=2)
    remarks = forms.CharField(required=False, max_length=500)

    def to_entry(self):
        data = self.cleaned_data
        return MarkEntry(
            student_id=data['student_id'],
            marks_obtained=data['marks_obtained'],
            remarks=data.get('remarks') or '',
        )


class MarksSubmissionForm(forms.Form):
    """
    Validates the ``marks`` array of a submission.

    Malformed entries do not reject the whole request; they are reported
    per entry alongside the entries that were applied.
    """
    marks = forms.JSONField(error_messages={'required': 'Marks array is required'})

    def clean_marks(self):
        marks = self.cleaned_data.get('marks')
        if not isinstance(marks, list) or not marks:
            raise forms.ValidationError('Marks array is required')

        self.entries = []
        self.entry_errors = []
        for raw in marks:
            if not isinstance(raw, dict):
                self.entry_errors.append({'student_id': None, 'error': 'Each mark must be an object'})
                continue
            entry_form = MarkEntryForm(data=raw)
            if entry_form.is_valid():
                self.entries.append(entry_form.to_entry())
            else:
                reasons = '; '.join(
                    f"{field}: {' '.join(messages)}" for field, messages in entry_form.errors.items()
                )
                self.entry_errors.append({'student_id': raw.get('student_id'), 'error': reasons})
        return marks


class MarksImportForm(forms.Form):
    """Upload of an Excel workbook with Roll Number / Marks / Remarks columns."""

    file = forms.FileField()

    def clean_file(self):
        uploaded_file = self.cleaned_data.get('file')
        if uploaded_file:
            ext = uploaded_file.name.split('.')[-1].lower()
            if ext != 'xlsx':
                raise forms.ValidationError('Only Excel (.xlsx) files are allowed.')

            if uploaded_file.size > config.MAX_FILE_SIZE:
                max_mb = config.MAX_FILE_SIZE / (1024 * 1024)
                raise forms.ValidationError(f'File size must be under {max_mb:.0f} MB.')

        return uploaded_file

