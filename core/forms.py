from django import forms
from django.forms.models import model_to_dict

from .exceptions import ValidationFailed


class IdListField(forms.Field):
    """A JSON array of positive integer primary keys."""

    default_error_messages = {
        'invalid': 'Enter a list of ids.',
        'invalid_id': '"%(value)s" is not a valid id.',
    }

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, (list, tuple)):
            raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
        ids = []
        for item in value:
            try:
                pk = int(item)
            except (TypeError, ValueError):
                pk = 0
            if pk <= 0 or isinstance(item, bool):
                raise forms.ValidationError(
                    self.error_messages['invalid_id'], code='invalid_id', params={'value': item}
                )
            if pk not in ids:
                ids.append(pk)
        return ids


def bind_partial(form_class, instance, data, **kwargs):
    """
    Bind ``form_class`` for a partial update of ``instance``.

    Fields absent from ``data`` keep their stored values, so cross-field
    checks always run against the full resulting record.
    """
    initial = model_to_dict(instance, fields=form_class._meta.fields)
    merged = {**initial, **data}
    return form_class(data=merged, instance=instance, **kwargs)


def validated(form, message=None):
    """Return ``form.cleaned_data`` or raise ValidationFailed with its errors."""
    if not form.is_valid():
        raise ValidationFailed.from_form(form, message)
    return form.cleaned_data


class IsoDateField(forms.DateField):
    """Date field that also accepts full ISO 8601 timestamps (date part kept)."""

    def to_python(self, value):
        if isinstance(value, str) and 'T' in value:
            value = value.split('T', 1)[0]
        return super().to_python(value)
