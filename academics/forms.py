from django import forms

from core.forms import IdListField

from .models import Subject


class SubjectForm(forms.ModelForm):
    """
    Create or edit a subject. ``teachers`` is an optional list of teacher
    ids; when present it replaces the subject's current teachers.
    """
    teachers = IdListField(required=False)

    class Meta:
        model = Subject
        fields = ['name', 'code', 'description', 'department', 'credits']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['credits'].required = False

    def clean_name(self):
        return self.cleaned_data['name'].strip()

    def clean_code(self):
        return self.cleaned_data['code'].strip().upper()

    def clean_department(self):
        department = self.cleaned_data['department'].strip()
        if len(department) < 2:
            raise forms.ValidationError('Department is required')
        return department

    def clean_credits(self):
        credits = self.cleaned_data.get('credits')
        return credits if credits is not None else Subject._meta.get_field('credits').default
